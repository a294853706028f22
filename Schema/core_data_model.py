# Core Data Model - In-memory schema document for .xcdatamodel versions
# Entities, attributes, relationships, fetched properties and configurations.
# Cross references (destination entity, inverse, parent, configuration members)
# are plain names and are resolved on demand, never stored as objects.

from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass, field
import uuid


# ============================================================================
# ENUMS
# ============================================================================

class AttributeType(str, Enum):
    """Attribute types, valued by their human-readable label."""
    INTEGER_16 = "Integer 16"
    INTEGER_32 = "Integer 32"
    INTEGER_64 = "Integer 64"
    DECIMAL = "Decimal"
    DOUBLE = "Double"
    FLOAT = "Float"
    STRING = "String"
    BOOLEAN = "Boolean"
    DATE = "Date"
    BINARY_DATA = "Binary Data"
    UUID = "UUID"
    URI = "URI"
    TRANSFORMABLE = "Transformable"
    OBJECT_ID = "Object ID"

    @property
    def xml_value(self) -> str:
        """Value of the XML attributeType attribute."""
        return _XML_ATTRIBUTE_TYPES.get(self, self.value)

    @classmethod
    def from_xml(cls, value: Optional[str]) -> 'AttributeType':
        """Decode an XML attributeType. Unknown values fall back to String."""
        for t in cls:
            if t.xml_value == value:
                return t
        return cls.STRING

    @classmethod
    def from_label(cls, label: str) -> 'AttributeType':
        """Accept "Integer 32", "integer32", "INTEGER_32" or the XML form "Binary"."""
        key = _normalize(label)
        for t in cls:
            if key in (_normalize(t.value), _normalize(t.name), _normalize(t.xml_value)):
                return t
        raise ValueError(f"Unknown attribute type: {label!r}")


_XML_ATTRIBUTE_TYPES = {
    AttributeType.BINARY_DATA: "Binary",
    AttributeType.OBJECT_ID: "ObjectID",
}


class DeleteRule(str, Enum):
    NULLIFY = "Nullify"
    CASCADE = "Cascade"
    DENY = "Deny"
    NO_ACTION = "No Action"

    @classmethod
    def from_xml(cls, value: Optional[str]) -> 'DeleteRule':
        """Decode an XML deletionRule. Unknown values fall back to Nullify."""
        try:
            return cls(value)
        except ValueError:
            return cls.NULLIFY

    @classmethod
    def from_label(cls, label: str) -> 'DeleteRule':
        key = _normalize(label)
        for r in cls:
            if key in (_normalize(r.value), _normalize(r.name)):
                return r
        raise ValueError(f"Unknown delete rule: {label!r}")


def _normalize(label: str) -> str:
    return "".join(ch for ch in str(label) if ch.isalnum()).lower()


# ============================================================================
# HELPERS
# ============================================================================

def _uid() -> str:
    return str(uuid.uuid4())


def _find_by_id(items: list, meta_id: str):
    return next((i for i in items if i.meta_id == meta_id), None)


def _index_by_id(items: list, meta_id: str) -> Optional[int]:
    return next((n for n, i in enumerate(items) if i.meta_id == meta_id), None)


def _remove_by_id(items: list, meta_id: str):
    index = _index_by_id(items, meta_id)
    if index is None:
        return None
    return items.pop(index)


def _copy_groups(groups) -> List[List[str]]:
    return [list(g) for g in groups]


_TRUE_LABELS = ("yes", "true", "1")
_FALSE_LABELS = ("no", "false", "0")


def _to_bool(value) -> bool:
    """Accept a bool or a YES/NO, true/false, 1/0 label."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        label = value.strip().lower()
        if label in _TRUE_LABELS:
            return True
        if label in _FALSE_LABELS:
            return False
    raise ValueError(f"Expected a boolean, got {value!r}")


def _to_count(value) -> Optional[int]:
    """Accept None, an int or a decimal string."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Expected a number, got {value!r}")


# Field coercion applied by set_field(); fields not listed are stored as given.
_COERCE = {
    "attribute_type": lambda v: v if isinstance(v, AttributeType) else AttributeType.from_label(v),
    "delete_rule": lambda v: v if isinstance(v, DeleteRule) else DeleteRule.from_label(v),
    "user_info": lambda v: dict(v or {}),
    "entity_names": lambda v: list(v or []),
    "uniqueness_constraints": lambda v: _copy_groups(v or []),
    "compound_indexes": lambda v: _copy_groups(v or []),
    "min_count": _to_count,
    "max_count": _to_count,
    "fetch_limit": _to_count,
}
_COERCE.update(dict.fromkeys(
    ("is_optional", "is_transient", "is_indexed", "is_abstract", "is_to_many", "is_ordered"), _to_bool))


class SchemaObject:
    """Common behaviour: id-addressed field editing and object traversal."""

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def set_field(self, name: str, value: Any) -> Any:
        """Set one editable field and return its previous value."""
        if name not in self.EDITABLE_FIELDS:
            raise ValueError(f"{type(self).__name__} has no editable field '{name}'")
        coerce = _COERCE.get(name)
        if coerce is not None:
            value = coerce(value)
        old = getattr(self, name)
        setattr(self, name, value)
        return old

    def iter_objects(self) -> Iterator['SchemaObject']:
        yield self


class SchemaContainer(SchemaObject):
    """Owner of ordered child collections (Model and Entity)."""

    COLLECTIONS: ClassVar[Tuple[str, ...]] = ()

    def _collection(self, name: str) -> list:
        if name not in self.COLLECTIONS:
            raise ValueError(f"{type(self).__name__} has no collection '{name}'")
        return getattr(self, name)

    def index_of(self, collection: str, meta_id: str) -> Optional[int]:
        return _index_by_id(self._collection(collection), meta_id)

    def insert(self, collection: str, item: SchemaObject, index: int) -> int:
        """Insert item at index, clamped to the current collection length."""
        items = self._collection(collection)
        index = max(0, min(index, len(items)))
        items.insert(index, item)
        return index

    def remove(self, collection: str, meta_id: str) -> Optional[SchemaObject]:
        return _remove_by_id(self._collection(collection), meta_id)


# ============================================================================
# PROPERTIES
# ============================================================================

@dataclass(eq=False)
class Attribute(SchemaObject):
    name: str
    attribute_type: AttributeType = AttributeType.STRING
    default_value: Optional[str] = None
    is_optional: bool = True
    is_transient: bool = False
    is_indexed: bool = False
    user_info: Dict[str, str] = field(default_factory=dict)
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "attribute_type", "default_value",
        "is_optional", "is_transient", "is_indexed", "user_info",
    )

    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "attribute_type": self.attribute_type.value,
            "default_value": self.default_value,
            "is_optional": self.is_optional,
            "is_transient": self.is_transient,
            "is_indexed": self.is_indexed,
            "user_info": dict(self.user_info),
        }
        if with_ids:
            d["meta_id"] = self.meta_id
        return d

    def clone(self) -> 'Attribute':
        return Attribute(
            name=self.name,
            attribute_type=self.attribute_type,
            default_value=self.default_value,
            is_optional=self.is_optional,
            is_transient=self.is_transient,
            is_indexed=self.is_indexed,
            user_info=dict(self.user_info),
        )


@dataclass(eq=False)
class Relationship(SchemaObject):
    name: str
    destination_entity: str = ""  # Entity name (string only, not object reference)
    inverse_relationship: Optional[str] = None  # Relationship name on the destination
    delete_rule: DeleteRule = DeleteRule.NULLIFY
    is_optional: bool = True
    is_transient: bool = False
    is_to_many: bool = False
    is_ordered: bool = False
    min_count: Optional[int] = None
    max_count: Optional[int] = None
    user_info: Dict[str, str] = field(default_factory=dict)
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "destination_entity", "inverse_relationship", "delete_rule",
        "is_optional", "is_transient", "is_to_many", "is_ordered",
        "min_count", "max_count", "user_info",
    )

    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "destination_entity": self.destination_entity,
            "inverse_relationship": self.inverse_relationship,
            "delete_rule": self.delete_rule.value,
            "is_optional": self.is_optional,
            "is_transient": self.is_transient,
            "is_to_many": self.is_to_many,
            "is_ordered": self.is_ordered,
            "min_count": self.min_count,
            "max_count": self.max_count,
            "user_info": dict(self.user_info),
        }
        if with_ids:
            d["meta_id"] = self.meta_id
        return d

    def clone(self) -> 'Relationship':
        return Relationship(
            name=self.name,
            destination_entity=self.destination_entity,
            inverse_relationship=self.inverse_relationship,
            delete_rule=self.delete_rule,
            is_optional=self.is_optional,
            is_transient=self.is_transient,
            is_to_many=self.is_to_many,
            is_ordered=self.is_ordered,
            min_count=self.min_count,
            max_count=self.max_count,
            user_info=dict(self.user_info),
        )


@dataclass(eq=False)
class FetchedProperty(SchemaObject):
    name: str
    predicate: str = ""  # Opaque predicate string, never parsed
    fetch_limit: Optional[int] = None
    destination_entity: Optional[str] = None
    user_info: Dict[str, str] = field(default_factory=dict)
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "predicate", "fetch_limit", "destination_entity", "user_info",
    )

    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "predicate": self.predicate,
            "fetch_limit": self.fetch_limit,
            "destination_entity": self.destination_entity,
            "user_info": dict(self.user_info),
        }
        if with_ids:
            d["meta_id"] = self.meta_id
        return d

    def clone(self) -> 'FetchedProperty':
        return FetchedProperty(
            name=self.name,
            predicate=self.predicate,
            fetch_limit=self.fetch_limit,
            destination_entity=self.destination_entity,
            user_info=dict(self.user_info),
        )


# ============================================================================
# ENTITY
# ============================================================================

@dataclass(eq=False)
class Entity(SchemaContainer):
    name: str
    class_name: Optional[str] = None
    parent_entity: Optional[str] = None  # Entity name, not validated
    is_abstract: bool = False
    user_info: Dict[str, str] = field(default_factory=dict)
    attributes: List[Attribute] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    fetched_properties: List[FetchedProperty] = field(default_factory=list)
    uniqueness_constraints: List[List[str]] = field(default_factory=list)
    compound_indexes: List[List[str]] = field(default_factory=list)
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "class_name", "parent_entity", "is_abstract", "user_info",
        "uniqueness_constraints", "compound_indexes",
    )
    COLLECTIONS: ClassVar[Tuple[str, ...]] = ("attributes", "relationships", "fetched_properties")

    # Attribute methods
    def add_attribute(self, name: str, attribute_type: AttributeType = AttributeType.STRING) -> Attribute:
        attr = Attribute(name=name, attribute_type=attribute_type)
        self.attributes.append(attr)
        return attr

    def get_attribute(self, name: str) -> Optional[Attribute]:
        return next((a for a in self.attributes if a.name == name), None)

    def get_attribute_by_id(self, meta_id: str) -> Optional[Attribute]:
        return _find_by_id(self.attributes, meta_id)

    def remove_attribute(self, meta_id: str) -> Optional[Attribute]:
        return _remove_by_id(self.attributes, meta_id)

    # Relationship methods
    def add_relationship(self, name: str, destination_entity: str) -> Relationship:
        rel = Relationship(name=name, destination_entity=destination_entity)
        self.relationships.append(rel)
        return rel

    def get_relationship(self, name: str) -> Optional[Relationship]:
        return next((r for r in self.relationships if r.name == name), None)

    def get_relationship_by_id(self, meta_id: str) -> Optional[Relationship]:
        return _find_by_id(self.relationships, meta_id)

    def remove_relationship(self, meta_id: str) -> Optional[Relationship]:
        return _remove_by_id(self.relationships, meta_id)

    # Fetched property methods
    def add_fetched_property(self, name: str, predicate: str = "") -> FetchedProperty:
        fp = FetchedProperty(name=name, predicate=predicate)
        self.fetched_properties.append(fp)
        return fp

    def get_fetched_property(self, name: str) -> Optional[FetchedProperty]:
        return next((f for f in self.fetched_properties if f.name == name), None)

    def get_fetched_property_by_id(self, meta_id: str) -> Optional[FetchedProperty]:
        return _find_by_id(self.fetched_properties, meta_id)

    def remove_fetched_property(self, meta_id: str) -> Optional[FetchedProperty]:
        return _remove_by_id(self.fetched_properties, meta_id)

    def get_member(self, name: str) -> Optional[SchemaObject]:
        """Find an attribute, relationship or fetched property by name."""
        return self.get_attribute(name) or self.get_relationship(name) or self.get_fetched_property(name)

    def iter_objects(self) -> Iterator[SchemaObject]:
        yield self
        yield from self.attributes
        yield from self.relationships
        yield from self.fetched_properties

    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "class_name": self.class_name,
            "parent_entity": self.parent_entity,
            "is_abstract": self.is_abstract,
            "user_info": dict(self.user_info),
            "attributes": [a.to_dict(with_ids) for a in self.attributes],
            "relationships": [r.to_dict(with_ids) for r in self.relationships],
            "fetched_properties": [f.to_dict(with_ids) for f in self.fetched_properties],
            "uniqueness_constraints": _copy_groups(self.uniqueness_constraints),
            "compound_indexes": _copy_groups(self.compound_indexes),
        }
        if with_ids:
            d["meta_id"] = self.meta_id
        return d

    def clone(self) -> 'Entity':
        return Entity(
            name=self.name,
            class_name=self.class_name,
            parent_entity=self.parent_entity,
            is_abstract=self.is_abstract,
            user_info=dict(self.user_info),
            attributes=[a.clone() for a in self.attributes],
            relationships=[r.clone() for r in self.relationships],
            fetched_properties=[f.clone() for f in self.fetched_properties],
            uniqueness_constraints=_copy_groups(self.uniqueness_constraints),
            compound_indexes=_copy_groups(self.compound_indexes),
        )


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(eq=False)
class Configuration(SchemaObject):
    name: str
    entity_names: List[str] = field(default_factory=list)  # Entity names, not enforced
    user_info: Dict[str, str] = field(default_factory=dict)
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "entity_names", "user_info")

    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "entity_names": list(self.entity_names),
            "user_info": dict(self.user_info),
        }
        if with_ids:
            d["meta_id"] = self.meta_id
        return d

    def clone(self) -> 'Configuration':
        return Configuration(
            name=self.name,
            entity_names=list(self.entity_names),
            user_info=dict(self.user_info),
        )


# ============================================================================
# MODEL (TOP-LEVEL)
# ============================================================================

@dataclass(eq=False)
class Model(SchemaContainer):
    """One version of the schema document.

    Entity and configuration names are expected to be unique, but this is not
    enforced here: duplicates are legal in memory and only matter to whoever
    presents or saves the model.

    `name` is the version name and `is_current` marks the current version.
    Both belong to the package: they are not editable through set_field, and
    the package loader overwrites them from the version directory name and
    the current version marker.
    """
    name: str = "Untitled"
    entities: List[Entity] = field(default_factory=list)
    configurations: List[Configuration] = field(default_factory=list)
    schema_version_label: Optional[str] = None
    is_current: bool = True
    meta_id: str = field(default_factory=_uid)

    EDITABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("schema_version_label",)
    COLLECTIONS: ClassVar[Tuple[str, ...]] = ("entities", "configurations")

    # Entity management
    def add_entity(self, name: str) -> Entity:
        entity = Entity(name=name)
        self.entities.append(entity)
        return entity

    def get_entity(self, name: str) -> Optional[Entity]:
        return next((e for e in self.entities if e.name == name), None)

    def get_entity_by_id(self, meta_id: str) -> Optional[Entity]:
        return _find_by_id(self.entities, meta_id)

    def remove_entity(self, meta_id: str) -> Optional[Entity]:
        return _remove_by_id(self.entities, meta_id)

    # Configuration management
    def add_configuration(self, name: str) -> Configuration:
        configuration = Configuration(name=name)
        self.configurations.append(configuration)
        return configuration

    def get_configuration(self, name: str) -> Optional[Configuration]:
        return next((c for c in self.configurations if c.name == name), None)

    def get_configuration_by_id(self, meta_id: str) -> Optional[Configuration]:
        return _find_by_id(self.configurations, meta_id)

    def remove_configuration(self, meta_id: str) -> Optional[Configuration]:
        return _remove_by_id(self.configurations, meta_id)

    # Lookup by id across the whole document
    def iter_objects(self) -> Iterator[SchemaObject]:
        yield self
        for entity in self.entities:
            yield from entity.iter_objects()
        yield from self.configurations

    def find(self, meta_id: str) -> Optional[SchemaObject]:
        return next((o for o in self.iter_objects() if o.meta_id == meta_id), None)

    # Name resolution (query time only, nothing is cached)
    def resolve_destination(self, rel: Relationship) -> Optional[Entity]:
        return self.get_entity(rel.destination_entity)

    def resolve_inverse(self, rel: Relationship) -> Optional[Relationship]:
        destination = self.resolve_destination(rel)
        if destination is None or not rel.inverse_relationship:
            return None
        return destination.get_relationship(rel.inverse_relationship)

    def resolve_parent(self, entity: Entity) -> Optional[Entity]:
        if not entity.parent_entity:
            return None
        return self.get_entity(entity.parent_entity)

    def resolve_members(self, configuration: Configuration) -> List[Entity]:
        return [e for e in (self.get_entity(n) for n in configuration.entity_names) if e is not None]

    def dangling_references(self) -> List[str]:
        """Describe every name reference that does not resolve right now."""
        problems = []
        for entity in self.entities:
            if entity.parent_entity and self.resolve_parent(entity) is None:
                problems.append(f"{entity.name}: parent entity '{entity.parent_entity}' not found")
            for rel in entity.relationships:
                if self.resolve_destination(rel) is None:
                    problems.append(f"{entity.name}.{rel.name}: destination '{rel.destination_entity}' not found")
                elif rel.inverse_relationship and self.resolve_inverse(rel) is None:
                    problems.append(
                        f"{entity.name}.{rel.name}: inverse '{rel.inverse_relationship}' "
                        f"not found on '{rel.destination_entity}'")
            for fp in entity.fetched_properties:
                if fp.destination_entity and self.get_entity(fp.destination_entity) is None:
                    problems.append(f"{entity.name}.{fp.name}: fetch entity '{fp.destination_entity}' not found")
        for configuration in self.configurations:
            for name in configuration.entity_names:
                if self.get_entity(name) is None:
                    problems.append(f"configuration {configuration.name}: member '{name}' not found")
        return problems

    # Serialization
    def to_dict(self, with_ids: bool = True) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "schema_version_label": self.schema_version_label,
            "entities": [e.to_dict(with_ids) for e in self.entities],
            "configurations": [c.to_dict(with_ids) for c in self.configurations],
        }
        if with_ids:
            d["meta_id"] = self.meta_id
            d["is_current"] = self.is_current
        return d

    def clone(self) -> 'Model':
        """Deep copy with fresh ids throughout."""
        return Model(
            name=self.name,
            entities=[e.clone() for e in self.entities],
            configurations=[c.clone() for c in self.configurations],
            schema_version_label=self.schema_version_label,
            is_current=self.is_current,
        )


__all__ = [
    'AttributeType', 'DeleteRule',
    'SchemaObject', 'SchemaContainer',
    'Attribute', 'Relationship', 'FetchedProperty',
    'Entity', 'Configuration', 'Model',
]

"""
XCDM Core - Shared logic for the Core Data model editor

This module contains the core components shared by main.py (CLI) and repl.py (REPL):
- Command / UndoLog: every edit recorded as the command that reverts it
- ModelDocument: the versions of a package, the current model and all edit operations
- model_to_lines(): Render a Model as indented text lines

Note: Edits must go through ModelDocument, never straight to the Model, or they
cannot be undone.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from config import DEFAULT_MODEL_NAME
from Schema.core_data_model import (
    Model, Entity, Attribute, Relationship, FetchedProperty, Configuration,
    AttributeType, SchemaObject, SchemaContainer
)
from Schema.adapters import XCDataModelDAdapter, PackageSaveError

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Optional[SchemaObject]]


# ============================================================================
# COMMANDS
# ============================================================================

class CommandKind(str, Enum):
    FIELD_SET = "field_set"
    STRUCTURAL_INSERT = "structural_insert"
    STRUCTURAL_REMOVE = "structural_remove"


@dataclass
class Command:
    """A single reversible edit.

    Targets are ids, looked up again every time the command runs, so a command
    stays valid while other edits come and go around it. Applying a command
    returns the command that reverts it, or None when the target is gone.
    """
    kind: CommandKind
    target_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def field_set(cls, target_id: str, field_name: str, value: Any, description: str = "") -> 'Command':
        return cls(CommandKind.FIELD_SET, target_id, {"field": field_name, "value": value}, description)

    @classmethod
    def insert(cls, container_id: str, collection: str, item: SchemaObject, index: int,
               description: str = "") -> 'Command':
        return cls(CommandKind.STRUCTURAL_INSERT, container_id,
                   {"collection": collection, "item": item, "index": index}, description)

    @classmethod
    def remove(cls, container_id: str, collection: str, item_id: str, description: str = "") -> 'Command':
        return cls(CommandKind.STRUCTURAL_REMOVE, container_id,
                   {"collection": collection, "item_id": item_id}, description)

    @property
    def held_item(self) -> Optional[SchemaObject]:
        """Object kept alive by this command (a removed item waiting to be re-inserted)."""
        return self.payload.get("item")

    def apply(self, resolve: Resolver) -> Optional['Command']:
        handler = getattr(self, f"_apply_{self.kind.value}")
        return handler(resolve)

    def _apply_field_set(self, resolve: Resolver) -> Optional['Command']:
        target = resolve(self.target_id)
        if target is None:
            logger.debug("Field target %s is gone, skipping '%s'", self.target_id, self.description)
            return None
        name = self.payload["field"]
        old = target.set_field(name, self.payload["value"])
        return Command.field_set(self.target_id, name, old, self.description)

    def _apply_structural_insert(self, resolve: Resolver) -> Optional['Command']:
        container = resolve(self.target_id)
        collection, item = self.payload["collection"], self.payload["item"]
        if not isinstance(container, SchemaContainer):
            logger.debug("Container %s is gone, skipping '%s'", self.target_id, self.description)
            return None
        if container.index_of(collection, item.meta_id) is not None:
            return None
        container.insert(collection, item, self.payload["index"])
        return Command.remove(self.target_id, collection, item.meta_id, self.description)

    def _apply_structural_remove(self, resolve: Resolver) -> Optional['Command']:
        container = resolve(self.target_id)
        collection, item_id = self.payload["collection"], self.payload["item_id"]
        if not isinstance(container, SchemaContainer):
            logger.debug("Container %s is gone, skipping '%s'", self.target_id, self.description)
            return None
        index = container.index_of(collection, item_id)
        if index is None:
            return None
        item = container.remove(collection, item_id)
        return Command.insert(self.target_id, collection, item, index, self.description)


class UndoLog:
    """Linear, unbounded undo/redo stacks of inverse commands."""

    def __init__(self):
        self._undo: List[Command] = []
        self._redo: List[Command] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_descriptions(self) -> List[str]:
        """Descriptions of undoable steps, most recent last."""
        return [c.description for c in self._undo]

    @property
    def redo_descriptions(self) -> List[str]:
        return [c.description for c in self._redo]

    def record(self, inverse: Command) -> None:
        """Remember how to revert an edit that has just been made."""
        self._undo.append(inverse)
        self._redo.clear()

    def undo(self, resolve: Resolver) -> bool:
        if not self._undo:
            return False
        command = self._undo.pop()
        inverse = command.apply(resolve)
        if inverse is not None:
            self._redo.append(inverse)
        return True

    def redo(self, resolve: Resolver) -> bool:
        if not self._redo:
            return False
        command = self._redo.pop()
        inverse = command.apply(resolve)
        if inverse is not None:
            self._undo.append(inverse)
        return True

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def held_objects(self) -> Iterator[SchemaObject]:
        for command in self._undo + self._redo:
            item = command.held_item
            if item is not None:
                yield from item.iter_objects()


# ============================================================================
# DOCUMENT
# ============================================================================

class ModelDocument:
    """A package of model versions plus the edit history of the current session.

    Not thread-safe: callers must serialize every call, and must not edit
    while a save is running.
    """

    def __init__(self, name: str = DEFAULT_MODEL_NAME):
        self.versions: Dict[str, Model] = {name: Model(name=name)}
        self.current_version_name: str = name
        self.package_path: Optional[Path] = None
        self.load_errors: Dict[str, str] = {}
        self.is_modified = False
        self.undo_log = UndoLog()

    @classmethod
    def open(cls, path: Union[str, Path]) -> 'ModelDocument':
        document = cls()
        document.load(path)
        return document

    @property
    def model(self) -> Model:
        """Model of the current version."""
        return self.versions[self.current_version_name]

    @property
    def version_names(self) -> List[str]:
        return sorted(self.versions)

    # ========== Package I/O ==========

    def load(self, path: Union[str, Path]) -> None:
        """Replace the whole document with the package at `path`.

        Raises MalformedPackageError without touching the current state.
        """
        contents = XCDataModelDAdapter.load_from_directory(path)
        self.versions = contents.versions
        self.current_version_name = contents.current_version_name
        self.load_errors = contents.errors
        self.package_path = Path(path)
        self.is_modified = False
        self.undo_log.clear()

    def save(self, path: Union[str, Path, None] = None) -> None:
        target = Path(path) if path is not None else self.package_path
        if target is None:
            raise PackageSaveError("No package path to save to")
        XCDataModelDAdapter.save_to_directory(target, self.versions, self.current_version_name)
        self.package_path = target
        self.is_modified = False

    # ========== Versions ==========

    def _set_current(self, name: str) -> None:
        self.current_version_name = name
        for version_name, model in self.versions.items():
            model.is_current = version_name == name

    @staticmethod
    def _valid_version_name(name: str) -> bool:
        return bool(name) and name.strip() == name and "/" not in name

    def switch_to(self, name: str) -> bool:
        if name not in self.versions:
            logger.info("Cannot switch to unknown version '%s'", name)
            return False
        if name != self.current_version_name:
            self._set_current(name)
            self.is_modified = True
        return True

    def create_version(self, name: str, based_on: Optional[str] = None) -> bool:
        """Copy `based_on` (or the current version) as `name` and switch to it."""
        if name in self.versions or not self._valid_version_name(name):
            logger.info("Cannot create version '%s'", name)
            return False
        source = self.versions.get(based_on) if based_on is not None else None
        if source is None:
            source = self.model
        copy = source.clone()
        copy.name = name
        self.versions[name] = copy
        self._set_current(name)
        self.is_modified = True
        return True

    def rename_version(self, old: str, new: str) -> bool:
        if old not in self.versions or new in self.versions or not self._valid_version_name(new):
            logger.info("Cannot rename version '%s' to '%s'", old, new)
            return False
        model = self.versions.pop(old)
        model.name = new
        self.versions[new] = model
        if self.current_version_name == old:
            self.current_version_name = new
        self.is_modified = True
        return True

    def delete_version(self, name: str) -> bool:
        if name not in self.versions or len(self.versions) == 1:
            logger.info("Cannot delete version '%s'", name)
            return False
        del self.versions[name]
        if self.current_version_name == name:
            self._set_current(min(self.versions))
        self.is_modified = True
        return True

    # ========== Edit plumbing ==========

    def _resolve(self, meta_id: str) -> Optional[SchemaObject]:
        found = self.model.find(meta_id)
        if found is None:
            found = next((o for o in self.undo_log.held_objects() if o.meta_id == meta_id), None)
        return found

    def _record(self, inverse: Command) -> None:
        self.undo_log.record(inverse)
        self.is_modified = True

    def _add(self, container: SchemaContainer, collection: str, item: SchemaObject, label: str) -> None:
        self._record(Command.remove(container.meta_id, collection, item.meta_id, f"Add {label} {item.name}"))

    def _remove(self, container: Optional[SchemaContainer], collection: str, item_id: str,
                label: str) -> Optional[SchemaObject]:
        if container is None:
            return None
        index = container.index_of(collection, item_id)
        if index is None:
            return None
        item = container.remove(collection, item_id)
        self._record(Command.insert(container.meta_id, collection, item, index, f"Delete {label} {item.name}"))
        return item

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self.model.get_entity_by_id(entity_id)

    # ========== Structural edits ==========

    def add_entity(self, name: str) -> Entity:
        entity = self.model.add_entity(name)
        self._add(self.model, "entities", entity, "entity")
        return entity

    def remove_entity(self, entity_id: str) -> Optional[Entity]:
        return self._remove(self.model, "entities", entity_id, "entity")

    def add_attribute(self, entity_id: str, name: str,
                      attribute_type: AttributeType = AttributeType.STRING) -> Optional[Attribute]:
        entity = self.get_entity(entity_id)
        if entity is None:
            return None
        attr = entity.add_attribute(name, attribute_type)
        self._add(entity, "attributes", attr, "attribute")
        return attr

    def remove_attribute(self, entity_id: str, attribute_id: str) -> Optional[Attribute]:
        return self._remove(self.get_entity(entity_id), "attributes", attribute_id, "attribute")

    def add_relationship(self, entity_id: str, name: str, destination_entity: str) -> Optional[Relationship]:
        entity = self.get_entity(entity_id)
        if entity is None:
            return None
        rel = entity.add_relationship(name, destination_entity)
        self._add(entity, "relationships", rel, "relationship")
        return rel

    def remove_relationship(self, entity_id: str, relationship_id: str) -> Optional[Relationship]:
        return self._remove(self.get_entity(entity_id), "relationships", relationship_id, "relationship")

    def add_fetched_property(self, entity_id: str, name: str, predicate: str = "") -> Optional[FetchedProperty]:
        entity = self.get_entity(entity_id)
        if entity is None:
            return None
        fp = entity.add_fetched_property(name, predicate)
        self._add(entity, "fetched_properties", fp, "fetched property")
        return fp

    def remove_fetched_property(self, entity_id: str, fetched_property_id: str) -> Optional[FetchedProperty]:
        return self._remove(self.get_entity(entity_id), "fetched_properties", fetched_property_id,
                            "fetched property")

    def add_configuration(self, name: str) -> Configuration:
        configuration = self.model.add_configuration(name)
        self._add(self.model, "configurations", configuration, "configuration")
        return configuration

    def remove_configuration(self, configuration_id: str) -> Optional[Configuration]:
        return self._remove(self.model, "configurations", configuration_id, "configuration")

    # ========== Field edits ==========

    def set_field(self, target_id: str, field_name: str, value: Any) -> bool:
        """Set one field of any object in the current model.

        Renaming an entity does not touch relationships, parents or
        configurations that refer to the old name.
        """
        target = self.model.find(target_id)
        if target is None:
            return False
        old = target.set_field(field_name, value)
        self._record(Command.field_set(target_id, field_name, old, f"Set {target.name}.{field_name}"))
        return True

    def set_user_info(self, target_id: str, key: str, value: str) -> bool:
        target = self.model.find(target_id)
        if target is None or not hasattr(target, "user_info"):
            return False
        info = dict(target.user_info)
        info[key] = value
        return self.set_field(target_id, "user_info", info)

    def remove_user_info(self, target_id: str, key: str) -> bool:
        target = self.model.find(target_id)
        if target is None or key not in getattr(target, "user_info", {}):
            return False
        info = dict(target.user_info)
        del info[key]
        return self.set_field(target_id, "user_info", info)

    def add_configuration_entity(self, configuration_id: str, entity_name: str) -> bool:
        configuration = self.model.get_configuration_by_id(configuration_id)
        if configuration is None or entity_name in configuration.entity_names:
            return False
        return self.set_field(configuration_id, "entity_names", configuration.entity_names + [entity_name])

    def remove_configuration_entity(self, configuration_id: str, entity_name: str) -> bool:
        configuration = self.model.get_configuration_by_id(configuration_id)
        if configuration is None or entity_name not in configuration.entity_names:
            return False
        names = [n for n in configuration.entity_names if n != entity_name]
        return self.set_field(configuration_id, "entity_names", names)

    # ========== Undo / Redo ==========

    @property
    def can_undo(self) -> bool:
        return self.undo_log.can_undo

    @property
    def can_redo(self) -> bool:
        return self.undo_log.can_redo

    @property
    def history(self) -> List[str]:
        return self.undo_log.undo_descriptions

    def undo(self) -> bool:
        # Undo never clears is_modified, even back at the first edit
        done = self.undo_log.undo(self._resolve)
        if done:
            self.is_modified = True
        return done

    def redo(self) -> bool:
        done = self.undo_log.redo(self._resolve)
        if done:
            self.is_modified = True
        return done


# ============================================================================
# DISPLAY
# ============================================================================

def _flags(*pairs) -> str:
    return "".join(f" [{label}]" for flag, label in pairs if flag)


def model_to_lines(model: Model) -> List[str]:
    """Render a Model as indented lines (entities, members, configurations)."""
    lines = [f"{model.name}" + (f" ({model.schema_version_label})" if model.schema_version_label else "")]
    for entity in model.entities:
        header = f"  {entity.name}"
        if entity.parent_entity:
            header += f" : {entity.parent_entity}"
        if entity.class_name:
            header += f" <{entity.class_name}>"
        lines.append(header + _flags((entity.is_abstract, "abstract")))
        for attr in entity.attributes:
            marker = "?" if attr.is_optional else ""
            default = f" = {attr.default_value}" if attr.default_value is not None else ""
            lines.append(f"    {attr.name}: {attr.attribute_type.value}{marker}{default}"
                         + _flags((attr.is_indexed, "indexed"), (attr.is_transient, "transient")))
        for rel in entity.relationships:
            arrow = "->>" if rel.is_to_many else "->"
            inverse = f" (inverse {rel.inverse_relationship})" if rel.inverse_relationship else ""
            lines.append(f"    {rel.name} {arrow} {rel.destination_entity}{inverse} [{rel.delete_rule.value}]"
                         + _flags((rel.is_ordered, "ordered"), (rel.is_transient, "transient")))
        for fp in entity.fetched_properties:
            lines.append(f"    {fp.name} ~ {fp.predicate}")
        for group in entity.uniqueness_constraints:
            lines.append(f"    unique ({', '.join(group)})")
        for group in entity.compound_indexes:
            lines.append(f"    index ({', '.join(group)})")
    for configuration in model.configurations:
        lines.append(f"  [{configuration.name}] {', '.join(configuration.entity_names)}")
    return lines

"""
XCDataModel Adapter - Parse and export the `contents` XML of one model version.
Converts <model>/<entity>/<attribute>/... elements to Model/Entity/Attribute
objects and back.
"""
import logging
from typing import Dict, List, Optional, Union

from lxml import etree

from config import DEFAULT_MODEL_NAME, FETCH_REQUEST_NAME, MODEL_METADATA, XML_DECLARATION
from ..core_data_model import (
    Model, Entity, Attribute, Relationship, FetchedProperty, Configuration,
    AttributeType, DeleteRule
)

logger = logging.getLogger(__name__)


class ModelDecodeError(ValueError):
    """The document is not a readable model version."""


class ModelEncodeError(ValueError):
    """A model could not be written as XML."""


YES, NO = "YES", "NO"


class XCDataModelAdapter:
    """Adapter between the Core Data model XML dialect and the in-memory Model."""

    # Fields encoded as child elements; everything else on a tag is an XML attribute.
    ELEMENT_FIELDS = {
        'model': ('entity', 'configuration', 'elements', 'fetchRequest'),
        'entity': ('attribute', 'relationship', 'fetchedProperty',
                   'uniquenessConstraints', 'compoundIndexes', 'userInfo'),
        'attribute': ('userInfo',),
        'relationship': ('userInfo',),
        'fetchedProperty': ('fetchRequest', 'userInfo'),
        'configuration': ('memberEntity', 'userInfo'),
    }

    def __init__(self):
        self.model: Optional[Model] = None

    # ========== Parse Methods ==========

    def parse(self, content: Union[bytes, str], model_name: str = None) -> Model:
        """Parse a `contents` document and return a Model."""
        if isinstance(content, str):
            content = content.encode('utf-8')
        parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(content, parser=parser)
        except etree.XMLSyntaxError as e:
            raise ModelDecodeError(f"Malformed XML: {e}") from e

        if root.tag != 'model':
            raise ModelDecodeError(f"Expected <model> root element, found <{root.tag}>")

        self.model = Model(
            name=root.get('name') or model_name or DEFAULT_MODEL_NAME,
            schema_version_label=root.get('userDefinedModelVersionIdentifier'),
        )
        for el in root.iterchildren('entity'):
            self.model.entities.append(self._parse_entity(el))
        for el in root.iterchildren('configuration'):
            self.model.configurations.append(self._parse_configuration(el))

        skipped = [el.tag for el in root.iterchildren('elements', 'fetchRequest')]
        if skipped:
            logger.debug("Dropping %d diagram/fetch request element(s) from %s", len(skipped), self.model.name)
        return self.model

    def _parse_entity(self, el) -> Entity:
        entity = Entity(
            name=self._required_name(el),
            class_name=el.get('representedClassName'),
            parent_entity=el.get('parentEntity'),
            is_abstract=self._bool(el, 'isAbstract'),
            user_info=self._parse_user_info(el),
        )
        entity.attributes = [self._parse_attribute(a) for a in el.iterchildren('attribute')]
        entity.relationships = [self._parse_relationship(r) for r in el.iterchildren('relationship')]
        entity.fetched_properties = [self._parse_fetched_property(f) for f in el.iterchildren('fetchedProperty')]
        entity.uniqueness_constraints = self._parse_groups(el, 'uniquenessConstraints', 'uniquenessConstraint', 'constraint')
        entity.compound_indexes = self._parse_groups(el, 'compoundIndexes', 'compoundIndex', 'index')
        return entity

    def _parse_attribute(self, el) -> Attribute:
        return Attribute(
            name=self._required_name(el),
            attribute_type=AttributeType.from_xml(el.get('attributeType')),
            default_value=el.get('defaultValueString'),
            is_optional=self._bool(el, 'optional', default=True),
            is_transient=self._bool(el, 'transient'),
            is_indexed=self._bool(el, 'indexed'),
            user_info=self._parse_user_info(el),
        )

    def _parse_relationship(self, el) -> Relationship:
        return Relationship(
            name=self._required_name(el),
            destination_entity=el.get('destinationEntity', ''),
            inverse_relationship=el.get('inverseName'),
            delete_rule=DeleteRule.from_xml(el.get('deletionRule')),
            is_optional=self._bool(el, 'optional', default=True),
            is_transient=self._bool(el, 'transient'),
            is_to_many=self._bool(el, 'toMany'),
            is_ordered=self._bool(el, 'ordered'),
            min_count=self._int(el, 'minCount'),
            max_count=self._int(el, 'maxCount'),
            user_info=self._parse_user_info(el),
        )

    def _parse_fetched_property(self, el) -> FetchedProperty:
        fp = FetchedProperty(name=self._required_name(el), user_info=self._parse_user_info(el))
        request = el.find('fetchRequest')
        if request is not None:
            fp.predicate = request.get('predicateString', '')
            fp.fetch_limit = self._int(request, 'fetchLimit')
            fp.destination_entity = request.get('entity')
        else:
            # Older files keep the predicate directly on the element
            fp.predicate = el.get('fetchRequest', '')
        return fp

    def _parse_configuration(self, el) -> Configuration:
        return Configuration(
            name=self._required_name(el),
            entity_names=[m.get('name', '') for m in el.iterchildren('memberEntity')],
            user_info=self._parse_user_info(el),
        )

    def _parse_user_info(self, el) -> Dict[str, str]:
        info = {}
        container = el.find('userInfo')
        if container is None:
            return info
        for entry in container.iterchildren('entry'):
            key = entry.get('key')
            if key is None:
                continue
            info[key] = entry.get('value', '')
        return info

    def _parse_groups(self, el, container_tag: str, group_tag: str, item_tag: str) -> List[List[str]]:
        groups = []
        for container in el.iterchildren(container_tag):
            for group in container.iterchildren(group_tag):
                groups.append([i.get('value', '') for i in group.iterchildren(item_tag)])
            # Flat form: items directly under the container make up one group
            flat = [i.get('value', '') for i in container.iterchildren(item_tag)]
            if flat:
                groups.append(flat)
        return groups

    @staticmethod
    def _required_name(el) -> str:
        name = el.get('name')
        if name is None:
            raise ModelDecodeError(f"<{el.tag}> element without a name (line {el.sourceline})")
        return name

    @staticmethod
    def _bool(el, key: str, default: bool = False) -> bool:
        value = el.get(key)
        if value is None:
            return default
        return value == YES

    @staticmethod
    def _int(el, key: str) -> Optional[int]:
        value = el.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            raise ModelDecodeError(f"<{el.tag} {key}=\"{value}\"> is not a number (line {el.sourceline})")

    @staticmethod
    def load_from_file(file_path: str, model_name: str = None) -> Model:
        """Load a `contents` file and parse it to a Model."""
        with open(file_path, 'rb') as f:
            content = f.read()

        adapter = XCDataModelAdapter()
        return adapter.parse(content, model_name)

    # ========== Export Methods ==========

    @classmethod
    def export(cls, model: Model) -> bytes:
        """
        Export a Model to the `contents` XML document.

        Args:
            model: The Model to export

        Returns:
            UTF-8 encoded XML document

        Raises:
            ModelEncodeError: when a value cannot be represented in XML
        """
        try:
            root = cls.export_to_element(model)
            body = etree.tostring(root, encoding='UTF-8', pretty_print=True, xml_declaration=False)
        except (TypeError, ValueError) as e:
            raise ModelEncodeError(f"Cannot encode model '{model.name}': {e}") from e
        return XML_DECLARATION + body

    @classmethod
    def export_to_element(cls, model: Model):
        root = etree.Element('model')
        for key, value in MODEL_METADATA.items():
            cls._set(root, key, value)
        cls._set(root, 'name', model.name)
        cls._set(root, 'userDefinedModelVersionIdentifier', model.schema_version_label)

        for entity in model.entities:
            root.append(cls._export_entity(entity))
        for configuration in model.configurations:
            root.append(cls._export_configuration(configuration))
        return root

    @classmethod
    def _export_entity(cls, entity: Entity):
        el = etree.Element('entity')
        cls._set(el, 'name', entity.name)
        cls._set(el, 'representedClassName', entity.class_name)
        cls._set(el, 'parentEntity', entity.parent_entity)
        cls._set(el, 'isAbstract', cls._yes_no(entity.is_abstract))
        cls._set(el, 'syncable', YES)

        for attr in entity.attributes:
            el.append(cls._export_attribute(attr))
        for rel in entity.relationships:
            el.append(cls._export_relationship(rel))
        for fp in entity.fetched_properties:
            el.append(cls._export_fetched_property(fp))
        cls._export_groups(el, entity.uniqueness_constraints, 'uniquenessConstraints', 'uniquenessConstraint', 'constraint')
        cls._export_groups(el, entity.compound_indexes, 'compoundIndexes', 'compoundIndex', 'index')
        cls._export_user_info(el, entity.user_info)
        return el

    @classmethod
    def _export_attribute(cls, attr: Attribute):
        el = etree.Element('attribute')
        cls._set(el, 'name', attr.name)
        cls._set(el, 'optional', cls._yes_no(attr.is_optional))
        cls._set(el, 'transient', cls._yes_no(attr.is_transient))
        cls._set(el, 'indexed', cls._yes_no(attr.is_indexed))
        cls._set(el, 'attributeType', attr.attribute_type.xml_value)
        cls._set(el, 'defaultValueString', attr.default_value)
        cls._set(el, 'syncable', YES)
        cls._export_user_info(el, attr.user_info)
        return el

    @classmethod
    def _export_relationship(cls, rel: Relationship):
        el = etree.Element('relationship')
        cls._set(el, 'name', rel.name)
        cls._set(el, 'optional', cls._yes_no(rel.is_optional))
        cls._set(el, 'transient', cls._yes_no(rel.is_transient))
        cls._set(el, 'toMany', cls._yes_no(rel.is_to_many))
        cls._set(el, 'ordered', cls._yes_no(rel.is_ordered))
        cls._set(el, 'minCount', cls._number(rel.min_count))
        cls._set(el, 'maxCount', cls._number(rel.max_count))
        cls._set(el, 'deletionRule', rel.delete_rule.value)
        cls._set(el, 'destinationEntity', rel.destination_entity)
        if rel.inverse_relationship is not None:
            cls._set(el, 'inverseName', rel.inverse_relationship)
            cls._set(el, 'inverseEntity', rel.destination_entity)
        cls._set(el, 'syncable', YES)
        cls._export_user_info(el, rel.user_info)
        return el

    @classmethod
    def _export_fetched_property(cls, fp: FetchedProperty):
        el = etree.Element('fetchedProperty')
        cls._set(el, 'name', fp.name)
        cls._set(el, 'optional', YES)
        cls._set(el, 'syncable', YES)
        request = etree.SubElement(el, 'fetchRequest')
        cls._set(request, 'name', FETCH_REQUEST_NAME)
        cls._set(request, 'entity', fp.destination_entity)
        cls._set(request, 'predicateString', fp.predicate)
        cls._set(request, 'fetchLimit', cls._number(fp.fetch_limit))
        cls._export_user_info(el, fp.user_info)
        return el

    @classmethod
    def _export_configuration(cls, configuration: Configuration):
        el = etree.Element('configuration')
        cls._set(el, 'name', configuration.name)
        for name in configuration.entity_names:
            cls._set(etree.SubElement(el, 'memberEntity'), 'name', name)
        cls._export_user_info(el, configuration.user_info)
        return el

    @classmethod
    def _export_user_info(cls, parent, user_info: Dict[str, str]) -> None:
        # An empty map is left out entirely, never written as <userInfo/>
        if not user_info:
            return
        container = etree.SubElement(parent, 'userInfo')
        for key in sorted(user_info):
            entry = etree.SubElement(container, 'entry')
            cls._set(entry, 'key', key)
            cls._set(entry, 'value', user_info[key])

    @classmethod
    def _export_groups(cls, parent, groups: List[List[str]], container_tag: str, group_tag: str, item_tag: str) -> None:
        if not groups:
            return
        container = etree.SubElement(parent, container_tag)
        for group in groups:
            group_el = etree.SubElement(container, group_tag)
            for value in group:
                cls._set(etree.SubElement(group_el, item_tag), 'value', value)

    @classmethod
    def _set(cls, el, key: str, value: Optional[str]) -> None:
        """Write an XML attribute; None means the attribute is absent."""
        if key in cls.ELEMENT_FIELDS.get(el.tag, ()):
            raise ModelEncodeError(f"'{key}' is stored as a child element of <{el.tag}>, not as an attribute")
        if value is not None:
            el.set(key, value)

    @staticmethod
    def _yes_no(flag: bool) -> str:
        return YES if flag else NO

    @staticmethod
    def _number(value: Optional[int]) -> Optional[str]:
        return None if value is None else str(int(value))

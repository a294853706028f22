"""
Tests for the `contents` XML codec.

Tests cover:
- Decoding the Xcode shape (attributes, relationships, fetched properties, configurations)
- Default values for missing attributes
- userInfo, uniqueness constraints and compound indexes
- Decode failures
- Encoding details (metadata, declaration, booleans)
- Round trip
"""
import pytest
from lxml import etree

from config import MODEL_METADATA
from Schema.core_data_model import Model, AttributeType, DeleteRule
from Schema.adapters import XCDataModelAdapter, ModelDecodeError, ModelEncodeError
from conftest import build_person_model, encode_decode


def parse(xml):
    return XCDataModelAdapter().parse(xml)


def wrap(body: str) -> bytes:
    return f'<?xml version="1.0" encoding="UTF-8"?><model name="M">{body}</model>'.encode()


class TestDecode:
    """Tests for XCDataModelAdapter.parse."""

    def test_person_document(self, person_xml):
        model = parse(person_xml)

        assert model.name == "M"
        person = model.get_entity("Person")
        assert person.class_name == "Person"

        age = person.get_attribute("age")
        assert age.attribute_type is AttributeType.INTEGER_32
        assert age.is_optional is False
        assert age.default_value == "0"

        friends = person.get_relationship("friends")
        assert friends.destination_entity == "Person"
        assert friends.inverse_relationship == "friends"
        assert friends.is_to_many is True
        assert friends.delete_rule is DeleteRule.NULLIFY

        adults = person.get_fetched_property("adults")
        assert adults.predicate == "age >= 18"
        assert adults.destination_entity == "Person"

        assert model.get_configuration("Cloud").entity_names == ["Person"]

    def test_missing_booleans(self):
        model = parse(wrap(
            '<entity name="E"><attribute name="a" attributeType="String"/>'
            '<relationship name="r" destinationEntity="E"/></entity>'))
        entity = model.get_entity("E")
        attr = entity.get_attribute("a")
        assert attr.is_optional is True
        assert attr.is_indexed is False
        assert attr.is_transient is False
        rel = entity.get_relationship("r")
        assert rel.is_optional is True
        assert rel.is_to_many is False
        assert rel.min_count is None
        assert rel.max_count is None
        assert entity.is_abstract is False

    def test_type_and_rule_fallbacks(self):
        model = parse(wrap(
            '<entity name="E"><attribute name="a" attributeType="Quaternion"/>'
            '<attribute name="b" attributeType="Binary"/>'
            '<relationship name="r" destinationEntity="E" deletionRule="Explode"/></entity>'))
        entity = model.get_entity("E")
        assert entity.get_attribute("a").attribute_type is AttributeType.STRING
        assert entity.get_attribute("b").attribute_type is AttributeType.BINARY_DATA
        assert entity.get_relationship("r").delete_rule is DeleteRule.NULLIFY

    def test_user_info(self):
        model = parse(wrap(
            '<entity name="E"><userInfo><entry key="k" value="v"/></userInfo>'
            '<attribute name="a"/></entity>'))
        entity = model.get_entity("E")
        assert entity.user_info == {"k": "v"}
        assert entity.get_attribute("a").user_info == {}

    def test_counts(self):
        model = parse(wrap(
            '<entity name="E"><relationship name="r" destinationEntity="E" '
            'minCount="1" maxCount="5" toMany="YES"/></entity>'))
        rel = model.get_entity("E").get_relationship("r")
        assert (rel.min_count, rel.max_count) == (1, 5)

    def test_legacy_fetched_property(self):
        model = parse(wrap('<entity name="E"><fetchedProperty name="f" fetchRequest="x == 1"/></entity>'))
        fp = model.get_entity("E").get_fetched_property("f")
        assert fp.predicate == "x == 1"
        assert fp.destination_entity is None

    def test_constraint_groups(self):
        model = parse(wrap(
            '<entity name="E">'
            '<uniquenessConstraints><uniquenessConstraint>'
            '<constraint value="a"/><constraint value="b"/>'
            '</uniquenessConstraint></uniquenessConstraints>'
            '<compoundIndexes><index value="c"/></compoundIndexes>'
            '</entity>'))
        entity = model.get_entity("E")
        assert entity.uniqueness_constraints == [["a", "b"]]
        assert entity.compound_indexes == [["c"]]

    def test_diagram_elements_are_dropped(self, person_xml):
        model = parse(person_xml)
        encoded = XCDataModelAdapter.export(model)
        assert b"<elements" not in encoded

    def test_model_name_fallback(self):
        model = XCDataModelAdapter().parse(b'<model/>', model_name="V3")
        assert model.name == "V3"
        assert model.entities == []

    def test_accepts_str(self):
        assert XCDataModelAdapter().parse('<model name="S"/>').name == "S"


class TestDecodeErrors:
    """Tests for documents that cannot be decoded."""

    def test_malformed_xml(self):
        with pytest.raises(ModelDecodeError):
            parse(b"<model><entity></model>")

    def test_wrong_root(self):
        with pytest.raises(ModelDecodeError):
            parse(b"<schema/>")

    def test_entity_without_name(self):
        with pytest.raises(ModelDecodeError):
            parse(wrap('<entity representedClassName="X"/>'))

    def test_non_numeric_count(self):
        with pytest.raises(ModelDecodeError):
            parse(wrap('<entity name="E"><relationship name="r" destinationEntity="E" maxCount="many"/></entity>'))

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse(b"not xml")


class TestEncode:
    """Tests for XCDataModelAdapter.export."""

    def test_declaration_and_metadata(self, person_model):
        encoded = XCDataModelAdapter.export(person_model)
        assert encoded.startswith(b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n')

        root = etree.fromstring(encoded)
        assert root.tag == "model"
        assert root.get("name") == "M"
        for key, value in MODEL_METADATA.items():
            assert root.get(key) == value
        assert root.get("userDefinedModelVersionIdentifier") is None

    def test_booleans_are_yes_no(self, person_model):
        root = etree.fromstring(XCDataModelAdapter.export(person_model))
        age = root.find("entity/attribute[@name='age']")
        assert age.get("optional") == "NO"
        assert age.get("indexed") == "NO"
        assert age.get("attributeType") == "Integer 32"
        friends = root.find("entity/relationship[@name='friends']")
        assert friends.get("toMany") == "YES"
        assert friends.get("inverseName") is None

    def test_empty_user_info_is_omitted(self, person_model):
        encoded = XCDataModelAdapter.export(person_model)
        assert b"userInfo" not in encoded

    def test_user_info_sorted(self):
        model = Model(name="M")
        model.add_entity("E").user_info = {"b": "2", "a": "1"}
        root = etree.fromstring(XCDataModelAdapter.export(model))
        keys = [e.get("key") for e in root.findall("entity/userInfo/entry")]
        assert keys == ["a", "b"]

    def test_inverse_entity_written_with_inverse_name(self):
        model = Model(name="M")
        rel = model.add_entity("Person").add_relationship("cars", "Car")
        rel.inverse_relationship = "owner"
        el = etree.fromstring(XCDataModelAdapter.export(model)).find("entity/relationship")
        assert el.get("inverseName") == "owner"
        assert el.get("inverseEntity") == "Car"

    def test_fetched_property_shape(self):
        model = Model(name="M")
        fp = model.add_entity("E").add_fetched_property("f", "x > 1")
        fp.fetch_limit = 10
        el = etree.fromstring(XCDataModelAdapter.export(model)).find("entity/fetchedProperty/fetchRequest")
        assert el.get("name") == "fetchedPropertyFetchRequest"
        assert el.get("predicateString") == "x > 1"
        assert el.get("fetchLimit") == "10"

    def test_unencodable_value(self):
        model = Model(name="M")
        model.add_entity("E").user_info = {"k": 5}
        with pytest.raises(ModelEncodeError):
            XCDataModelAdapter.export(model)


class TestRoundTrip:
    """decode(encode(m)) keeps the structure, ids excluded."""

    def test_person_scenario(self, person_model):
        decoded = encode_decode(person_model)
        assert decoded.to_dict(with_ids=False) == person_model.to_dict(with_ids=False)

        person = decoded.get_entity("Person")
        age = person.get_attribute("age")
        assert age.attribute_type is AttributeType.INTEGER_32
        assert age.is_optional is False
        friends = person.get_relationship("friends")
        assert friends.destination_entity == "Person"
        assert friends.is_to_many is True

    def test_full_model(self):
        model = build_person_model()
        model.schema_version_label = "2.1"
        person = model.get_entity("Person")
        person.class_name = "PersonMO"
        person.is_abstract = True
        person.uniqueness_constraints = [["age"], ["age", "name"]]
        person.compound_indexes = [["age"]]
        person.get_attribute("age").user_info = {"min": "0"}
        attr = person.add_attribute("photo", AttributeType.BINARY_DATA)
        attr.is_transient = True
        rel = person.get_relationship("friends")
        rel.is_ordered = True
        rel.min_count, rel.max_count = 0, 50
        rel.delete_rule = DeleteRule.NO_ACTION
        fp = person.add_fetched_property("adults", "age >= 18")
        fp.fetch_limit = 3
        fp.destination_entity = "Person"
        employee = model.add_entity("Employee")
        employee.parent_entity = "Person"
        cfg = model.add_configuration("Cloud")
        cfg.entity_names = ["Person", "Employee"]
        cfg.user_info = {"sync": "yes"}

        decoded = encode_decode(model)
        assert decoded.to_dict(with_ids=False) == model.to_dict(with_ids=False)

    def test_current_flag_is_not_in_the_document(self, person_model):
        person_model.is_current = False
        encoded = XCDataModelAdapter.export(person_model)
        assert b"current" not in encoded.lower()
        assert "is_current" not in person_model.to_dict(with_ids=False)
        assert encode_decode(person_model).is_current is True

    def test_encode_is_deterministic(self, person_model):
        assert XCDataModelAdapter.export(person_model) == XCDataModelAdapter.export(encode_decode(person_model))

"""
Tests for the in-memory schema model.

Tests cover:
- Enum labels and fallbacks
- set_field with coercion and unknown fields
- Container insert/remove by id
- Name resolution helpers and dangling references
- clone() and to_dict()
"""
import pytest

from Schema.core_data_model import (
    Model, Entity, Attribute, Relationship, Configuration, FetchedProperty,
    AttributeType, DeleteRule
)
from conftest import build_person_model


class TestEnums:
    """Tests for AttributeType and DeleteRule."""

    def test_xml_values(self):
        assert AttributeType.BINARY_DATA.xml_value == "Binary"
        assert AttributeType.OBJECT_ID.xml_value == "ObjectID"
        assert AttributeType.INTEGER_32.xml_value == "Integer 32"

    def test_unknown_xml_type_falls_back_to_string(self):
        assert AttributeType.from_xml("Quaternion") is AttributeType.STRING
        assert AttributeType.from_xml(None) is AttributeType.STRING

    def test_from_label_accepts_variants(self):
        assert AttributeType.from_label("Integer 32") is AttributeType.INTEGER_32
        assert AttributeType.from_label("integer32") is AttributeType.INTEGER_32
        assert AttributeType.from_label("INTEGER_32") is AttributeType.INTEGER_32
        assert AttributeType.from_label("Binary") is AttributeType.BINARY_DATA
        assert AttributeType.from_label("BinaryData") is AttributeType.BINARY_DATA

    def test_from_label_rejects_unknown(self):
        with pytest.raises(ValueError):
            AttributeType.from_label("Quaternion")

    def test_delete_rule_fallback(self):
        assert DeleteRule.from_xml("Cascade") is DeleteRule.CASCADE
        assert DeleteRule.from_xml("Explode") is DeleteRule.NULLIFY
        assert DeleteRule.from_label("noaction") is DeleteRule.NO_ACTION


class TestSetField:
    """Tests for SchemaObject.set_field."""

    def test_returns_previous_value(self):
        attr = Attribute(name="age")
        assert attr.set_field("name", "years") == "age"
        assert attr.name == "years"

    def test_enum_fields_accept_labels(self):
        attr = Attribute(name="age")
        attr.set_field("attribute_type", "Integer 64")
        assert attr.attribute_type is AttributeType.INTEGER_64

        rel = Relationship(name="owner", destination_entity="Person")
        old = rel.set_field("delete_rule", "Cascade")
        assert old is DeleteRule.NULLIFY
        assert rel.delete_rule is DeleteRule.CASCADE

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError):
            Entity(name="Person").set_field("attributes", [])
        with pytest.raises(ValueError):
            Attribute(name="x").set_field("meta_id", "other")

    def test_boolean_fields_accept_labels(self):
        attr = Attribute(name="age")
        attr.set_field("is_optional", "NO")
        assert attr.is_optional is False
        attr.set_field("is_indexed", "yes")
        assert attr.is_indexed is True
        rel = Relationship(name="friends", destination_entity="Person")
        rel.set_field("is_to_many", True)
        assert rel.is_to_many is True

    @pytest.mark.parametrize("value", ["maybe", "", None, 2])
    def test_boolean_fields_reject_other_values(self, value):
        attr = Attribute(name="age")
        with pytest.raises(ValueError):
            attr.set_field("is_optional", value)
        assert attr.is_optional is True

    def test_count_fields(self):
        rel = Relationship(name="friends", destination_entity="Person")
        rel.set_field("max_count", "10")
        assert rel.max_count == 10
        rel.set_field("max_count", None)
        assert rel.max_count is None
        fp = FetchedProperty(name="adults")
        fp.set_field("fetch_limit", 3)
        assert fp.fetch_limit == 3

    @pytest.mark.parametrize("value", ["many", "1.5", True])
    def test_count_fields_reject_other_values(self, value):
        rel = Relationship(name="friends", destination_entity="Person")
        with pytest.raises(ValueError):
            rel.set_field("min_count", value)
        assert rel.min_count is None

    def test_model_name_is_not_editable(self):
        model = Model(name="V1")
        with pytest.raises(ValueError):
            model.set_field("name", "Other")
        assert model.name == "V1"
        model.set_field("schema_version_label", "2.0")
        assert model.schema_version_label == "2.0"

    def test_user_info_is_copied(self):
        info = {"k": "v"}
        entity = Entity(name="Person")
        entity.set_field("user_info", info)
        info["k"] = "changed"
        assert entity.user_info == {"k": "v"}


class TestContainers:
    """Tests for index_of / insert / remove on Model and Entity."""

    def test_insert_clamps_index(self):
        entity = Entity(name="Person")
        entity.add_attribute("a")
        attr = Attribute(name="z")
        assert entity.insert("attributes", attr, 10) == 1
        assert [a.name for a in entity.attributes] == ["a", "z"]

    def test_remove_and_index_of(self):
        entity = Entity(name="Person")
        a, b, c = (entity.add_attribute(n) for n in "abc")
        assert entity.index_of("attributes", b.meta_id) == 1
        assert entity.remove("attributes", b.meta_id) is b
        assert entity.index_of("attributes", b.meta_id) is None
        assert entity.remove("attributes", "missing") is None

    def test_unknown_collection_raises(self):
        with pytest.raises(ValueError):
            Model().index_of("attributes", "x")

    def test_find_searches_whole_model(self):
        model = build_person_model()
        person = model.get_entity("Person")
        age = person.get_attribute("age")
        assert model.find(age.meta_id) is age
        assert model.find(model.meta_id) is model
        assert model.find("nope") is None

    def test_duplicate_names_are_allowed(self):
        model = Model()
        model.add_entity("Person")
        model.add_entity("Person")
        assert len(model.entities) == 2


class TestResolution:
    """Tests for name references resolved at query time."""

    def test_resolve_destination_and_inverse(self):
        model = Model()
        person = model.add_entity("Person")
        car = model.add_entity("Car")
        cars = person.add_relationship("cars", "Car")
        cars.inverse_relationship = "owner"
        owner = car.add_relationship("owner", "Person")

        assert model.resolve_destination(cars) is car
        assert model.resolve_inverse(cars) is owner

    def test_rename_does_not_cascade(self):
        model = build_person_model()
        person = model.get_entity("Person")
        person.set_field("name", "Human")
        friends = person.get_relationship("friends")
        assert friends.destination_entity == "Person"
        assert model.resolve_destination(friends) is None

    def test_resolve_parent_and_members(self):
        model = Model()
        base = model.add_entity("Base")
        child = model.add_entity("Child")
        child.parent_entity = "Base"
        cfg = model.add_configuration("Cloud")
        cfg.entity_names = ["Child", "Ghost"]

        assert model.resolve_parent(child) is base
        assert model.resolve_parent(base) is None
        assert model.resolve_members(cfg) == [child]

    def test_dangling_references(self):
        model = build_person_model()
        person = model.get_entity("Person")
        person.parent_entity = "Being"
        person.get_relationship("friends").inverse_relationship = "buddies"
        person.fetched_properties.append(FetchedProperty(name="x", destination_entity="Robot"))
        model.configurations.append(Configuration(name="Cloud", entity_names=["Ghost"]))

        problems = model.dangling_references()
        assert len(problems) == 4
        assert any("Being" in p for p in problems)
        assert any("buddies" in p for p in problems)
        assert any("Robot" in p for p in problems)
        assert any("Ghost" in p for p in problems)

    def test_no_dangling_references(self):
        assert build_person_model().dangling_references() == []


class TestCopyAndSerialization:
    """Tests for clone() and to_dict()."""

    def test_clone_is_deep_with_fresh_ids(self):
        model = build_person_model()
        model.get_entity("Person").user_info["k"] = "v"
        copy = model.clone()

        assert copy.to_dict(with_ids=False) == model.to_dict(with_ids=False)
        assert copy.meta_id != model.meta_id
        original, cloned = model.get_entity("Person"), copy.get_entity("Person")
        assert cloned is not original
        assert cloned.meta_id != original.meta_id
        assert cloned.attributes[0].meta_id != original.attributes[0].meta_id

        cloned.user_info["k"] = "changed"
        cloned.attributes[0].name = "years"
        assert original.user_info["k"] == "v"
        assert original.attributes[0].name == "age"

    def test_to_dict_ids(self):
        model = build_person_model()
        with_ids = model.to_dict()
        without = model.to_dict(with_ids=False)
        assert with_ids["meta_id"] == model.meta_id
        assert "meta_id" not in without
        assert "meta_id" not in without["entities"][0]["attributes"][0]
        assert without["entities"][0]["attributes"][0]["attribute_type"] == "Integer 32"

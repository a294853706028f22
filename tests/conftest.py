"""Shared fixtures for the XCDM test suite."""
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from core import ModelDocument
from Schema.core_data_model import Model, AttributeType
from Schema.adapters import XCDataModelAdapter, XCDataModelDAdapter


PERSON_XML = b"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<model type="com.apple.IDECoreDataModeler.DataModel" documentVersion="1.0" name="M">
    <entity name="Person" representedClassName="Person" syncable="YES">
        <attribute name="age" optional="NO" attributeType="Integer 32" defaultValueString="0" syncable="YES"/>
        <attribute name="name" attributeType="String" syncable="YES"/>
        <relationship name="friends" toMany="YES" deletionRule="Nullify" destinationEntity="Person" inverseName="friends" inverseEntity="Person" syncable="YES"/>
        <fetchedProperty name="adults" optional="YES" syncable="YES">
            <fetchRequest name="fetchedPropertyFetchRequest" entity="Person" predicateString="age &gt;= 18"/>
        </fetchedProperty>
    </entity>
    <configuration name="Cloud">
        <memberEntity name="Person"/>
    </configuration>
    <elements>
        <element name="Person" positionX="-63" positionY="-18" width="128" height="88"/>
    </elements>
</model>
"""


def build_person_model(name: str = "M") -> Model:
    """Model M: Person with a non-optional Integer 32 `age` and to-many `friends`."""
    model = Model(name=name)
    person = model.add_entity("Person")
    age = person.add_attribute("age", AttributeType.INTEGER_32)
    age.is_optional = False
    friends = person.add_relationship("friends", "Person")
    friends.is_to_many = True
    return model


def write_version(package: Path, version_name: str, content: bytes) -> None:
    version_dir = package / f"{version_name}.xcdatamodel"
    version_dir.mkdir(parents=True)
    (version_dir / "contents").write_bytes(content)


@pytest.fixture
def person_model():
    return build_person_model()


@pytest.fixture
def person_xml():
    return PERSON_XML


@pytest.fixture
def package_path(tmp_path):
    """Package with versions V1 (Person) and V2 (Person + Address), V2 current."""
    package = tmp_path / "Shop.xcdatamodeld"
    v1 = build_person_model("V1")
    v2 = build_person_model("V2")
    v2.add_entity("Address").add_attribute("street")
    XCDataModelDAdapter.save_to_directory(package, {"V1": v1, "V2": v2}, "V2")
    return package


@pytest.fixture
def document():
    """Fresh document with one entity Person holding attributes a, b, c."""
    doc = ModelDocument()
    person = doc.model.add_entity("Person")
    for name in ("a", "b", "c"):
        person.add_attribute(name)
    return doc


def encode_decode(model: Model) -> Model:
    return XCDataModelAdapter().parse(XCDataModelAdapter.export(model))

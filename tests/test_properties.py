"""Property bags and case-insensitive filters."""

from types import SimpleNamespace

from tmx_loader.properties import (
    by_class,
    by_name,
    by_property,
    by_property_value,
    get_prop,
    map_props,
)
from tmx_loader.schema import Property


def thing(name=None, class_=None, **properties):
    return SimpleNamespace(name=name, class_=class_, properties=properties)


def test_map_props_lowercases_names_only():
    bag = map_props([
        Property(name="Solid", type="bool", value="true"),
        {"name": "Label", "value": "Keep Case"},
    ])
    assert bag == {"solid": True, "label": "Keep Case"}
    assert get_prop(bag, "SOLID") is True
    assert get_prop(bag, "missing", 3) == 3
    assert map_props(None) == {}


def test_name_and_class_ignore_case():
    door = thing(name="Door", class_="Portal")
    assert by_name("door")(door)
    assert not by_name("window")(door)
    assert by_class("PORTAL")(door)
    assert by_class(None)(thing())
    assert not by_class("portal")(thing())


def test_by_property():
    crate = thing(weight=10, kind="Heavy")
    assert by_property("Weight")(crate)
    assert by_property("weight", 10)(crate)
    assert not by_property("weight", 11)(crate)
    assert by_property("kind", "heavy")(crate)
    assert not by_property("kind", "heavy", case_insensitive=False)(crate)
    assert not by_property("color")(crate)


def test_by_property_value():
    crate = thing(weight=10)
    assert by_property_value("weight", lambda v: v > 5)(crate)
    assert not by_property_value("weight", lambda v: v > 50)(crate)

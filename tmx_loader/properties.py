"""
Property bags and case-insensitive filters.

Tiled properties arrive as a list of {name, type, value}. Friendly objects
keep them as a dict with lowercased keys, so 'Solid' and 'solid' are the
same property. Values keep their type and case; string comparisons in the
filters below are case-insensitive.
"""

from typing import Any, Callable, Dict, Iterable, Optional, Union

PropertyValue = Union[str, int, float, bool]
PropertyBag = Dict[str, PropertyValue]

_MISSING = object()


def map_props(source: Optional[Iterable]) -> PropertyBag:
    """
    Build a property bag from parsed properties.

    Accepts schema Property models (name/value attributes) or plain dicts.
    """
    bag: PropertyBag = {}
    for prop in source or ():
        if isinstance(prop, dict):
            name, value = prop['name'], prop.get('value')
        else:
            name, value = prop.name, prop.value
        bag[name.lower()] = value
    return bag


def get_prop(bag: PropertyBag, name: str, default: Any = None) -> Any:
    return bag.get(name.lower(), default)


def _same_text(a: Optional[str], b: Optional[str]) -> bool:
    if a and b:
        return a.lower() == b.lower()
    return a == b


def by_name(name: Optional[str]) -> Callable[[Any], bool]:
    """Predicate: object name equals name, ignoring case."""
    def predicate(obj) -> bool:
        return _same_text(getattr(obj, 'name', None), name)
    return predicate


def by_class(class_name: Optional[str]) -> Callable[[Any], bool]:
    """Predicate: object class equals class_name, ignoring case."""
    def predicate(obj) -> bool:
        return _same_text(getattr(obj, 'class_', None), class_name)
    return predicate


def by_property(name: str, value: Any = _MISSING,
                case_insensitive: bool = True) -> Callable[[Any], bool]:
    """
    Predicate: the object has property name (and, if given, that value).

    by_property('solid')        -> any object carrying 'solid'
    by_property('kind', 'Door') -> 'kind' equal to 'door', ignoring case
    """
    key = name.lower()

    def predicate(obj) -> bool:
        bag = getattr(obj, 'properties', None) or {}
        bag = {k.lower(): v for k, v in bag.items()}
        if value is _MISSING:
            return key in bag
        actual = bag.get(key, _MISSING)
        if isinstance(actual, str) and isinstance(value, str) and case_insensitive:
            return actual.lower() == value.lower()
        return actual == value
    return predicate


def by_property_value(name: str,
                      matcher: Callable[[Any], bool]) -> Callable[[Any], bool]:
    """Predicate: matcher(value of property name) is truthy."""
    key = name.lower()

    def predicate(obj) -> bool:
        bag = getattr(obj, 'properties', None) or {}
        bag = {k.lower(): v for k, v in bag.items()}
        return bool(matcher(bag.get(key)))
    return predicate

"""Conversion between identity keyed and kind keyed option maps.

Callers configure the cache with maps keyed by resource classes. Internally,
options are keyed by `GroupVersionKind`, with `DEFAULT_GVK` holding the entry
that applies to every kind without its own entry.
"""

from collections.abc import Mapping
from typing import Any, TypeVar

from .exceptions import CapabilityError, KindResolutionError
from .kind import DEFAULT_GVK, AllObjects, GroupVersionKind, ObjectAll
from .resource import Object
from .scheme import Scheme

__all__ = [
    "ObjectIdentity",
    "gvk_for_object",
    "type_for_kind",
    "to_kind_map",
    "to_object_map",
    "disable_deep_copy_to_kind_map",
    "disable_deep_copy_to_object_map",
]

T = TypeVar("T")

ObjectIdentity = type[Object] | Object
"""A resource class, or an instance of one, naming a kind."""


def gvk_for_object(obj: Any, scheme: Scheme) -> GroupVersionKind:
    """Return the single kind registered for an object or its class."""
    kinds = scheme.object_kinds(obj)
    if len(kinds) > 1:
        name = obj.__name__ if isinstance(obj, type) else type(obj).__name__
        raise KindResolutionError(
            f"Multiple kinds associated with type {name}, refusing to guess: "
            f"{', '.join(str(k) for k in kinds)}"
        )
    return kinds[0]


def type_for_kind(gvk: GroupVersionKind, scheme: Scheme) -> type[Object]:
    """Return the resource class registered for a kind."""
    obj_type = scheme.type_for(gvk)
    if not isinstance(obj_type, type) or not issubclass(obj_type, Object):
        raise CapabilityError(obj_type, gvk)
    return obj_type


def to_kind_map(
    by_object: Mapping[ObjectIdentity, T] | None, default: T, scheme: Scheme
) -> dict[GroupVersionKind, T]:
    """Key the map by kind and add the default under `DEFAULT_GVK`."""
    by_kind: dict[GroupVersionKind, T] = {}
    for obj, value in (by_object or {}).items():
        by_kind[gvk_for_object(obj, scheme)] = value
    by_kind[DEFAULT_GVK] = default
    return by_kind


def to_object_map(
    by_kind: Mapping[GroupVersionKind, T], scheme: Scheme
) -> tuple[dict[type[Object], T], T | None]:
    """Key the map by resource class and split out the default entry."""
    by_object: dict[type[Object], T] = {}
    for gvk, value in by_kind.items():
        if gvk.is_default:
            continue
        by_object[type_for_kind(gvk, scheme)] = value
    return by_object, by_kind.get(DEFAULT_GVK)


def disable_deep_copy_to_kind_map(
    by_object: Mapping[ObjectIdentity | AllObjects, bool] | None, scheme: Scheme
) -> dict[GroupVersionKind, bool]:
    """Key the deep copy flags by kind, mapping `ObjectAll` to `DEFAULT_GVK`."""
    by_kind: dict[GroupVersionKind, bool] = {}
    for obj, disable in (by_object or {}).items():
        if obj is ObjectAll:
            by_kind[DEFAULT_GVK] = disable
            continue
        by_kind[gvk_for_object(obj, scheme)] = disable
    return by_kind


def disable_deep_copy_to_object_map(
    by_kind: Mapping[GroupVersionKind, bool], scheme: Scheme
) -> dict[type[Object] | AllObjects, bool]:
    """Key the deep copy flags by class, mapping `DEFAULT_GVK` to `ObjectAll`."""
    by_object: dict[type[Object] | AllObjects, bool] = {}
    for gvk, disable in by_kind.items():
        if gvk.is_default:
            by_object[ObjectAll] = disable
            continue
        by_object[type_for_kind(gvk, scheme)] = disable
    return by_object

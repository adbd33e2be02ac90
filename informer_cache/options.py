"""Options for building a cache and the rules for layering them.

Options may be layered: a cache builder carries its own options that override
the options inherited from the caller. The layers are combined per kind:

  - Selectors are combined via logical AND. Label requirements of both layers
    are unioned and field selectors are joined with a conjunction.
  - Transforms are chained. The inherited transform is called first and the
    overriding transform is called with its result.
  - Unsafe deep copy flags use precedence. The inherited flag for a kind is
    only used when the overriding options have no flag for that kind.

A layer without an entry for a kind restricts that kind with its default
selector and transform, so the default of one layer is combined with the
specific entry of the other.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import datetime
import logging
from typing import Any, TypeVar

import httpx

from .convert import (
    ObjectIdentity,
    disable_deep_copy_to_kind_map,
    disable_deep_copy_to_object_map,
    to_kind_map,
    to_object_map,
)
from .exceptions import CacheException, CompositionError
from .kind import DEFAULT_GVK, AllObjects, GroupVersionKind
from .mapper import RESTMapper
from .scheme import Scheme, get_default_scheme
from .selector import ObjectSelector, combine_selectors
from .transform import TransformFunc, chain_transforms

__all__ = [
    "Options",
    "ViewOptions",
    "ViewByObject",
    "SelectorsByObject",
    "TransformByObject",
    "DisableDeepCopyByObject",
    "combine_scheme",
    "select_mapper",
    "select_resync",
    "select_namespaces",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SelectorsByObject = dict[ObjectIdentity, ObjectSelector]
TransformByObject = dict[ObjectIdentity, TransformFunc]
DisableDeepCopyByObject = dict[ObjectIdentity | AllObjects, bool]


@dataclass
class ViewByObject:
    """Per kind restrictions keyed by resource class."""

    selectors: SelectorsByObject = field(default_factory=dict)
    """Restricts the list and watch of a kind to the selected objects."""

    transform: TransformByObject = field(default_factory=dict)
    """Transforms applied to objects of a kind before they are stored.

    Called both for new objects entering the cache and for updated objects.
    """

    unsafe_disable_deep_copy: DisableDeepCopyByObject = field(default_factory=dict)
    """Skip copying objects of a kind returned from get and list.

    Objects returned when copying is disabled must be copied by the caller
    before being mutated, otherwise the cached object is mutated.
    """


@dataclass
class ViewOptions:
    """Restricts the objects a cache lists, watches and returns."""

    namespaces: list[str] = field(default_factory=list)
    """Namespaces to watch, all namespaces when empty."""

    default_selector: ObjectSelector = field(default_factory=ObjectSelector)
    """Selector for every kind without a more specific selector."""

    default_transform: TransformFunc | None = None
    """Transform for every kind without a more specific transform."""

    by_object: ViewByObject = field(default_factory=ViewByObject)
    """Restrictions for specific kinds."""


@dataclass
class Options:
    """Options for creating a cache."""

    http_client: httpx.AsyncClient | None = None
    """The HTTP client used to talk to the API server."""

    scheme: Scheme | None = None
    """The scheme mapping resource classes to kinds."""

    mapper: RESTMapper | None = None
    """The mapper from kinds to REST resources."""

    resync_every: datetime.timedelta | None = None
    """The period at which informers re-deliver all objects to handlers."""

    view: ViewOptions = field(default_factory=ViewOptions)
    """Restrictions on the objects in the cache."""

    def inherit_from(self, inherited: "Options") -> "Options":
        """Return new options combining these options with inherited options.

        These options take precedence over the inherited options. Both option
        sets are left unchanged.
        """
        combined = Options()
        combined.scheme = _wrap(
            "scheme", combine_scheme, inherited.scheme, self.scheme
        )
        combined.mapper = select_mapper(inherited.mapper, self.mapper)
        combined.resync_every = select_resync(inherited.resync_every, self.resync_every)
        combined.http_client = (
            self.http_client
            if self.http_client is not None
            else inherited.http_client
        )
        combined.view.namespaces = select_namespaces(
            inherited.view.namespaces, self.view.namespaces
        )
        scheme = _scheme_or_default(combined.scheme)
        (
            combined.view.by_object.selectors,
            combined.view.default_selector,
        ) = _wrap("selectors", _combine_selectors, inherited, self, scheme)
        combined.view.by_object.unsafe_disable_deep_copy = _wrap(
            "unsafe deep copy", _combine_unsafe_deep_copy, inherited, self, scheme
        )
        (
            combined.view.by_object.transform,
            combined.view.default_transform,
        ) = _wrap("transforms", _combine_transforms, inherited, self, scheme)
        return combined


def _scheme_or_default(scheme: Scheme | None) -> Scheme:
    if scheme is None:
        return get_default_scheme()
    return scheme


def _scheme_for(options: Options, combined: Scheme) -> Scheme:
    """Return the scheme that resolves kinds named by an option layer."""
    if options.scheme is None:
        return combined
    return options.scheme


def _wrap(step: str, func: Callable[..., T], *args: Any) -> T:
    try:
        return func(*args)
    except CacheException as err:
        _LOGGER.debug("Failed to combine %s: %s", step, err)
        raise CompositionError(step, err) from err


def combine_scheme(*schemes: Scheme | None) -> Scheme | None:
    """Return a scheme holding the known types of every scheme present."""
    out: Scheme | None = None
    for scheme in schemes:
        if scheme is None:
            continue
        for gvk, obj_type in scheme.all_known_types().items():
            if out is None:
                out = Scheme()
            out.add_known_type_with_name(gvk, obj_type)
    return out


def select_mapper(
    default: RESTMapper | None, override: RESTMapper | None
) -> RESTMapper | None:
    """Return the overriding mapper if set."""
    if override is not None:
        return override
    return default


def select_resync(
    default: datetime.timedelta | None, override: datetime.timedelta | None
) -> datetime.timedelta | None:
    """Return the overriding resync period if set."""
    if override is not None:
        return override
    return default


def select_namespaces(default: list[str], override: list[str]) -> list[str]:
    """Return the overriding namespaces if any are set."""
    if override:
        return list(override)
    return list(default)


def _effective(by_kind: Mapping[GroupVersionKind, T], gvk: GroupVersionKind) -> T:
    """Return the entry for a kind, or the default when the kind has none."""
    if gvk in by_kind:
        return by_kind[gvk]
    return by_kind[DEFAULT_GVK]


def _combine_selectors(
    inherited: Options, options: Options, scheme: Scheme
) -> tuple[SelectorsByObject, ObjectSelector]:
    options_by_kind = to_kind_map(
        options.view.by_object.selectors,
        options.view.default_selector,
        _scheme_for(options, scheme),
    )
    inherited_by_kind = to_kind_map(
        inherited.view.by_object.selectors,
        inherited.view.default_selector,
        _scheme_for(inherited, scheme),
    )
    combined = {
        gvk: combine_selectors(
            _effective(inherited_by_kind, gvk), _effective(options_by_kind, gvk)
        )
        for gvk in inherited_by_kind.keys() | options_by_kind.keys()
    }
    by_object, default = to_object_map(combined, scheme)
    return dict(by_object), default if default is not None else ObjectSelector()


def _combine_unsafe_deep_copy(
    inherited: Options, options: Options, scheme: Scheme
) -> DisableDeepCopyByObject:
    options_by_kind = disable_deep_copy_to_kind_map(
        options.view.by_object.unsafe_disable_deep_copy,
        _scheme_for(options, scheme),
    )
    inherited_by_kind = disable_deep_copy_to_kind_map(
        inherited.view.by_object.unsafe_disable_deep_copy,
        _scheme_for(inherited, scheme),
    )
    combined = dict(inherited_by_kind)
    combined.update(options_by_kind)
    return dict(disable_deep_copy_to_object_map(combined, scheme))


def _combine_transforms(
    inherited: Options, options: Options, scheme: Scheme
) -> tuple[TransformByObject, TransformFunc | None]:
    options_by_kind: dict[GroupVersionKind, TransformFunc | None] = to_kind_map(
        options.view.by_object.transform,
        options.view.default_transform,
        _scheme_for(options, scheme),
    )
    inherited_by_kind: dict[GroupVersionKind, TransformFunc | None] = to_kind_map(
        inherited.view.by_object.transform,
        inherited.view.default_transform,
        _scheme_for(inherited, scheme),
    )
    combined = {
        gvk: chain_transforms(
            _effective(inherited_by_kind, gvk), _effective(options_by_kind, gvk)
        )
        for gvk in inherited_by_kind.keys() | options_by_kind.keys()
    }
    by_object, default = to_object_map(combined, scheme)
    return {
        obj_type: func for obj_type, func in by_object.items() if func is not None
    }, default

"""Registry mapping resource classes to kinds and back.

The process default scheme is held in a context variable so that it is chosen
explicitly at process start with `scheme_context` rather than mutated as a
global. Code that needs a scheme and was not given one calls
`get_default_scheme`.
"""

from collections.abc import Generator
import contextlib
import contextvars
import logging
from typing import Any

from .exceptions import KindResolutionError, SchemeError
from .kind import GroupVersionKind
from .resource import (
    ConfigMap,
    ConfigMapList,
    Deployment,
    Namespace,
    Pod,
    PodList,
    Secret,
    Service,
)

__all__ = [
    "Scheme",
    "new_default_scheme",
    "get_default_scheme",
    "scheme_context",
]

_LOGGER = logging.getLogger(__name__)


class Scheme:
    """Maps resource classes to the kinds they represent."""

    def __init__(self) -> None:
        """Initialize an empty Scheme."""
        self._types: dict[GroupVersionKind, type] = {}
        self._kinds: dict[type, list[GroupVersionKind]] = {}

    def add_known_type_with_name(self, gvk: GroupVersionKind, obj_type: type) -> None:
        """Register a class under an explicit kind."""
        if not gvk.version or not gvk.kind:
            raise SchemeError(f"Kind must have a version and kind: {gvk!r}")
        if (existing := self._types.get(gvk)) is not None and existing is not obj_type:
            raise SchemeError(
                f"Double registration of different types for {gvk}: "
                f"{existing.__name__} and {obj_type.__name__}"
            )
        self._types[gvk] = obj_type
        kinds = self._kinds.setdefault(obj_type, [])
        if gvk not in kinds:
            kinds.append(gvk)

    def add_known_types(self, *obj_types: type) -> None:
        """Register classes under the apiVersion and kind they declare."""
        for obj_type in obj_types:
            api_version = getattr(obj_type, "api_version", None)
            kind = getattr(obj_type, "kind", None)
            if not api_version or not kind:
                raise SchemeError(
                    f"Type {obj_type.__name__} does not declare api_version and kind"
                )
            self.add_known_type_with_name(
                GroupVersionKind.from_api_version(api_version, kind), obj_type
            )

    def all_known_types(self) -> dict[GroupVersionKind, type]:
        """Return a copy of every registered kind and its class."""
        return dict(self._types)

    def recognizes(self, gvk: GroupVersionKind) -> bool:
        """Return true if a class is registered for the kind."""
        return gvk in self._types

    def object_kinds(self, obj: Any) -> list[GroupVersionKind]:
        """Return the kinds registered for an object or class."""
        obj_type = obj if isinstance(obj, type) else type(obj)
        if not (kinds := self._kinds.get(obj_type)):
            raise KindResolutionError(
                f"No kind is registered for the type {obj_type.__name__} in scheme"
            )
        return list(kinds)

    def type_for(self, gvk: GroupVersionKind) -> type:
        """Return the class registered for a kind."""
        if (obj_type := self._types.get(gvk)) is None:
            raise KindResolutionError(f"No type is registered for kind '{gvk}'")
        return obj_type

    def __repr__(self) -> str:
        return f"Scheme({len(self._types)} kinds)"


def new_default_scheme() -> Scheme:
    """Create a scheme holding the built-in resource types."""
    scheme = Scheme()
    scheme.add_known_types(
        Pod,
        PodList,
        ConfigMap,
        ConfigMapList,
        Secret,
        Service,
        Namespace,
        Deployment,
    )
    return scheme


_scheme_ctx: contextvars.ContextVar[Scheme | None] = contextvars.ContextVar(
    "_scheme_ctx", default=None
)


def get_default_scheme() -> Scheme:
    """Get the current default scheme.

    If no scheme is set in the context variable, creates one with the built-in
    resource types.
    """
    scheme = _scheme_ctx.get()
    if scheme is None:
        _LOGGER.debug("Creating default scheme")
        scheme = new_default_scheme()
        _scheme_ctx.set(scheme)
    return scheme


@contextlib.contextmanager
def scheme_context(scheme: Scheme | None = None) -> Generator[Scheme, None, None]:
    """Context manager that sets the default scheme.

    Args:
        scheme: Optional scheme to use. If None, a new scheme with the built-in
                resource types is created.

    Yields:
        The Scheme used as the default within the context
    """
    if scheme is None:
        scheme = new_default_scheme()
    token = _scheme_ctx.set(scheme)
    try:
        yield scheme
    finally:
        _scheme_ctx.reset(token)

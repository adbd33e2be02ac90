"""Transform functions applied to objects before they are stored."""

from collections.abc import Callable, Mapping
from typing import Any

from .kind import DEFAULT_GVK, GroupVersionKind

__all__ = [
    "TransformFunc",
    "chain_transforms",
    "TransformByKind",
]

TransformFunc = Callable[[Any], Any]
"""Maps an object to the object to store, raising to reject it."""


def chain_transforms(
    inherited: TransformFunc | None, current: TransformFunc | None
) -> TransformFunc | None:
    """Return a transform applying the inherited transform then the current one.

    When the inherited transform raises, the current transform is not called
    and the exception propagates.
    """
    if inherited is None:
        return current
    if current is None:
        return inherited

    def chained(obj: Any) -> Any:
        return current(inherited(obj))

    return chained


class TransformByKind:
    """Resolves the transform for a kind, falling back to the default."""

    def __init__(
        self, transforms: Mapping[GroupVersionKind, TransformFunc | None]
    ) -> None:
        self._default = transforms.get(DEFAULT_GVK)
        self._transforms = {
            gvk: func for gvk, func in transforms.items() if not gvk.is_default
        }

    def get(self, gvk: GroupVersionKind) -> TransformFunc | None:
        """Return the transform for the kind."""
        if (func := self._transforms.get(gvk)) is not None:
            return func
        return self._default

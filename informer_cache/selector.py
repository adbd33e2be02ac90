"""Library for combining label and field selectors.

Selectors from two layers of options are combined via logical AND:
  - The combined label selector is a union of the requirements of every
    label selector present.
  - The combined field selector is the conjunction of every field selector
    present.
A side that is absent (None) in every input stays absent in the result.
"""

from dataclasses import dataclass
import logging
from typing import Any

from .fields import FieldSelector, and_selectors
from .labels import LabelSelector

__all__ = [
    "ObjectSelector",
    "combine_selectors",
    "combine_label_selectors",
    "combine_field_selectors",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectSelector:
    """Restricts the objects cached for a kind by labels and fields."""

    label: LabelSelector | None = None
    """Objects must have labels matching this selector, if set."""

    field: FieldSelector | None = None
    """Objects must have fields matching this selector, if set."""

    def matches(self, obj: Any) -> bool:
        """Return true if the object is selected."""
        if self.label is not None and not self.label.matches(obj.labels):
            return False
        if self.field is not None and not self.field.matches(obj.field_set()):
            return False
        return True

    @property
    def query_params(self) -> dict[str, str]:
        """Return the list and watch query parameters for the selector."""
        params = {}
        if self.label is not None and not self.label.empty():
            params["labelSelector"] = str(self.label)
        if self.field is not None and not self.field.empty():
            params["fieldSelector"] = str(self.field)
        return params


def combine_label_selectors(*selectors: LabelSelector | None) -> LabelSelector | None:
    """Return a selector holding the requirements of every selector present."""
    combined: LabelSelector | None = None
    for selector in selectors:
        if selector is None:
            continue
        if combined is None:
            combined = LabelSelector()
        combined = combined.add(*selector.requirements)
    return combined


def combine_field_selectors(*selectors: FieldSelector | None) -> FieldSelector | None:
    """Return the conjunction of every selector present."""
    present = [selector for selector in selectors if selector is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return and_selectors(*present)


def combine_selectors(*selectors: ObjectSelector) -> ObjectSelector:
    """Combine selectors so the result matches objects matched by all of them."""
    combined = ObjectSelector(
        label=combine_label_selectors(*(s.label for s in selectors)),
        field=combine_field_selectors(*(s.field for s in selectors)),
    )
    _LOGGER.debug("Combined selectors %s into %s", selectors, combined)
    return combined

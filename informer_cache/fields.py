"""Field selectors that restrict objects by the values of selected fields.

Field selectors are conjunctions of `field=value` and `field!=value` terms
matched against the flattened field set of an object, e.g.
`status.phase=Running,spec.nodeName!=node-1`.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

from .exceptions import SelectorParseError

__all__ = [
    "FieldSelector",
    "FieldRequirement",
    "OneTermEqualSelector",
    "OneTermNotEqualSelector",
    "AndSelector",
    "Everything",
    "and_selectors",
    "parse_field_selector",
    "selector_from_set",
]


@dataclass(frozen=True, order=True)
class FieldRequirement:
    """A single field term."""

    field: str
    operator: str
    value: str

    def __str__(self) -> str:
        return f"{self.field}{self.operator}{self.value}"


class FieldSelector(ABC):
    """A predicate over the field set of an object."""

    @abstractmethod
    def matches(self, fields: Mapping[str, str]) -> bool:
        """Return true if the fields satisfy the selector."""

    @abstractmethod
    def requirements(self) -> list[FieldRequirement]:
        """Return the terms of the selector."""

    def empty(self) -> bool:
        """Return true if the selector matches everything."""
        return not self.requirements()

    def requires_exact_match(self, field: str) -> str | None:
        """Return the value a field must equal, if the selector requires one."""
        for req in self.requirements():
            if req.field == field and req.operator == "=":
                return req.value
        return None

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldSelector):
            return NotImplemented
        return sorted(self.requirements()) == sorted(other.requirements())

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.requirements())))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({str(self)!r})"


class OneTermEqualSelector(FieldSelector):
    """Selects objects whose field equals a value."""

    def __init__(self, field: str, value: str) -> None:
        self._field = field
        self._value = value

    def matches(self, fields: Mapping[str, str]) -> bool:
        return fields.get(self._field, "") == self._value

    def requirements(self) -> list[FieldRequirement]:
        return [FieldRequirement(self._field, "=", self._value)]


class OneTermNotEqualSelector(FieldSelector):
    """Selects objects whose field does not equal a value."""

    def __init__(self, field: str, value: str) -> None:
        self._field = field
        self._value = value

    def matches(self, fields: Mapping[str, str]) -> bool:
        return fields.get(self._field, "") != self._value

    def requirements(self) -> list[FieldRequirement]:
        return [FieldRequirement(self._field, "!=", self._value)]


class AndSelector(FieldSelector):
    """Selects objects matched by all of the child selectors."""

    def __init__(self, *selectors: FieldSelector) -> None:
        self._selectors = selectors

    def matches(self, fields: Mapping[str, str]) -> bool:
        return all(s.matches(fields) for s in self._selectors)

    def requirements(self) -> list[FieldRequirement]:
        return [req for s in self._selectors for req in s.requirements()]


class Everything(FieldSelector):
    """Selects all objects."""

    def matches(self, fields: Mapping[str, str]) -> bool:
        return True

    def requirements(self) -> list[FieldRequirement]:
        return []


def and_selectors(*selectors: FieldSelector) -> FieldSelector:
    """Return a selector matching objects matched by every selector."""
    return AndSelector(*selectors)


def _parse_term(term: str) -> FieldSelector:
    for op in ("!=", "==", "="):
        if op in term:
            field, value = term.split(op, 1)
            field = field.strip()
            if not field:
                raise SelectorParseError(f"Invalid field selector term '{term}'")
            if op == "!=":
                return OneTermNotEqualSelector(field, value.strip())
            return OneTermEqualSelector(field, value.strip())
    raise SelectorParseError(
        f"Invalid field selector term '{term}', expected field=value or field!=value"
    )


def parse_field_selector(value: str) -> FieldSelector:
    """Parse a field selector string into a FieldSelector."""
    if not value.strip():
        return Everything()
    terms = [_parse_term(term) for term in value.split(",")]
    if len(terms) == 1:
        return terms[0]
    return AndSelector(*terms)


def selector_from_set(fields: Mapping[str, str]) -> FieldSelector:
    """Return a selector requiring each field to equal its value."""
    terms = [OneTermEqualSelector(k, v) for k, v in sorted(fields.items())]
    if not terms:
        return Everything()
    if len(terms) == 1:
        return terms[0]
    return AndSelector(*terms)

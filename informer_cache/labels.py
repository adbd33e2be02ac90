"""Label selectors that restrict objects by their labels.

A selector is a conjunction of requirements using the kubernetes syntax e.g.
`app=web,tier!=cache,env in (prod,staging),!legacy`. An empty selector
matches every object.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
import re

from .exceptions import SelectorParseError

__all__ = [
    "Operator",
    "Requirement",
    "LabelSelector",
    "parse_label_selector",
    "selector_from_set",
]

_KEY_RE = re.compile(
    r"^([a-z0-9]([-a-z0-9.]*[a-z0-9])?/)?[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$"
)
_VALUE_RE = re.compile(r"^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?$")
_SET_RE = re.compile(r"^\s*(\S+)\s+(in|notin)\s+\((.*)\)\s*$")
_TERM_RE = re.compile(r"^\s*([^!=\s]+)\s*(==|!=|=)\s*(\S*)\s*$")


class Operator(StrEnum):
    """Operator relating a label key to its values."""

    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


@dataclass(frozen=True, order=True)
class Requirement:
    """A single constraint on the labels of an object."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not _KEY_RE.match(self.key):
            raise SelectorParseError(f"Invalid label key '{self.key}'")
        for value in self.values:
            if not _VALUE_RE.match(value):
                raise SelectorParseError(f"Invalid label value '{value}'")
        if self.operator in (Operator.EQUALS, Operator.NOT_EQUALS):
            if len(self.values) != 1:
                raise SelectorParseError(
                    f"Operator '{self.operator}' requires exactly one value"
                )
        elif self.operator in (Operator.IN, Operator.NOT_IN):
            if not self.values:
                raise SelectorParseError(
                    f"Operator '{self.operator}' requires at least one value"
                )
        elif self.values:
            raise SelectorParseError(
                f"Operator '{self.operator}' does not accept values"
            )

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Return true if the labels satisfy this requirement."""
        match self.operator:
            case Operator.EQUALS | Operator.IN:
                return labels.get(self.key) in self.values
            case Operator.NOT_EQUALS | Operator.NOT_IN:
                return labels.get(self.key) not in self.values
            case Operator.EXISTS:
                return self.key in labels
            case Operator.DOES_NOT_EXIST:
                return self.key not in labels
        return False

    def __str__(self) -> str:
        match self.operator:
            case Operator.EXISTS:
                return self.key
            case Operator.DOES_NOT_EXIST:
                return f"!{self.key}"
            case Operator.IN | Operator.NOT_IN:
                return f"{self.key} {self.operator} ({','.join(self.values)})"
        return f"{self.key}{self.operator}{self.values[0]}"


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements."""

    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    def add(self, *requirements: Requirement) -> "LabelSelector":
        """Return a new selector with the additional requirements."""
        return LabelSelector(
            tuple(sorted(self.requirements + tuple(requirements), key=lambda r: r.key))
        )

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Return true if the labels satisfy every requirement."""
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    def empty(self) -> bool:
        """Return true if the selector matches everything."""
        return not self.requirements

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)


def _split_terms(value: str) -> Iterable[str]:
    """Split on commas that are not inside a parenthesized value set."""
    depth = 0
    term: list[str] = []
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorParseError(f"Unbalanced parenthesis in '{value}'")
        if char == "," and depth == 0:
            yield "".join(term)
            term = []
            continue
        term.append(char)
    if depth != 0:
        raise SelectorParseError(f"Unbalanced parenthesis in '{value}'")
    yield "".join(term)


def _parse_requirement(term: str) -> Requirement:
    if match := _SET_RE.match(term):
        key, op, values = match.groups()
        return Requirement(
            key,
            Operator(op),
            tuple(sorted({v.strip() for v in values.split(",")})),
        )
    if match := _TERM_RE.match(term):
        key, op, value = match.groups()
        operator = Operator.NOT_EQUALS if op == "!=" else Operator.EQUALS
        return Requirement(key, operator, (value,))
    stripped = term.strip()
    if stripped.startswith("!"):
        return Requirement(stripped[1:].strip(), Operator.DOES_NOT_EXIST)
    return Requirement(stripped, Operator.EXISTS)


def parse_label_selector(value: str) -> LabelSelector:
    """Parse a label selector string into a LabelSelector."""
    if not value.strip():
        return LabelSelector()
    requirements = []
    for term in _split_terms(value):
        if not term.strip():
            raise SelectorParseError(f"Empty requirement in label selector '{value}'")
        requirements.append(_parse_requirement(term))
    return LabelSelector().add(*requirements)


def selector_from_set(labels: Mapping[str, str]) -> LabelSelector:
    """Return a selector that requires each key to equal its value."""
    return LabelSelector().add(
        *(Requirement(k, Operator.EQUALS, (v,)) for k, v in labels.items())
    )

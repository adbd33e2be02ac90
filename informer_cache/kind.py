"""Identifiers for kinds of kubernetes resources."""

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "GroupVersionKind",
    "GroupVersionResource",
    "DEFAULT_GVK",
    "AllObjects",
    "ObjectAll",
]


@dataclass(frozen=True, order=True)
class GroupVersionKind:
    """Identifier for the schema of a kubernetes resource."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        """Parse an apiVersion (e.g. `apps/v1` or `v1`) and kind."""
        if "/" in api_version:
            group, version = api_version.split("/", 1)
        else:
            group, version = "", api_version
        return cls(group, version, kind)

    @property
    def api_version(self) -> str:
        """Return the apiVersion string used in object documents."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def is_default(self) -> bool:
        """Return true for the sentinel that applies to all kinds."""
        return self == DEFAULT_GVK

    def __str__(self) -> str:
        if self.is_default:
            return "<default>"
        return f"{self.api_version}, Kind={self.kind}"


DEFAULT_GVK = GroupVersionKind("", "", "")
"""Key holding the entry that applies to every kind unless overridden."""


@dataclass(frozen=True, order=True)
class GroupVersionResource:
    """Identifier for the REST resource serving a kind."""

    group: str
    version: str
    resource: str

    @property
    def api_path(self) -> str:
        """Return the URL path prefix for the group version."""
        if self.group:
            return f"/apis/{self.group}/{self.version}"
        return f"/api/{self.version}"


class AllObjects(Enum):
    """Wildcard identity standing for every kind of object."""

    ALL = "*"


ObjectAll = AllObjects.ALL

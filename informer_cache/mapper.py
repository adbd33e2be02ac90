"""Mapping from kinds to the REST resources that serve them."""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any

import httpx
from mashumaro import DataClassDictMixin, field_options
from mashumaro.exceptions import MissingField

from .exceptions import DiscoveryError, KindResolutionError
from .kind import GroupVersionKind, GroupVersionResource

__all__ = [
    "RESTMapping",
    "RESTMapper",
    "StaticRESTMapper",
    "discover_rest_mapper",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RESTMapping:
    """Describes how to reach the resource for a kind."""

    gvk: GroupVersionKind
    resource: GroupVersionResource
    namespaced: bool


class RESTMapper(ABC):
    """Resolves kinds to REST resources."""

    @abstractmethod
    def rest_mapping(self, gvk: GroupVersionKind) -> RESTMapping:
        """Return the mapping for a kind.

        Raises:
            KindResolutionError: If the kind is not served by the API server.
        """

    def is_namespaced(self, gvk: GroupVersionKind) -> bool:
        """Return true if objects of the kind live in a namespace."""
        return self.rest_mapping(gvk).namespaced


class StaticRESTMapper(RESTMapper):
    """A RESTMapper built from a fixed set of mappings."""

    def __init__(self, mappings: list[RESTMapping] | None = None) -> None:
        """Initialize StaticRESTMapper."""
        self._mappings: dict[GroupVersionKind, RESTMapping] = {}
        for mapping in mappings or ():
            self.add(mapping)

    def add(self, mapping: RESTMapping) -> None:
        """Add a mapping for a kind."""
        self._mappings[mapping.gvk] = mapping

    def add_kind(
        self, gvk: GroupVersionKind, plural: str, namespaced: bool = True
    ) -> None:
        """Add a mapping for a kind served by the named resource."""
        self.add(
            RESTMapping(
                gvk=gvk,
                resource=GroupVersionResource(gvk.group, gvk.version, plural),
                namespaced=namespaced,
            )
        )

    def rest_mapping(self, gvk: GroupVersionKind) -> RESTMapping:
        if (mapping := self._mappings.get(gvk)) is None:
            raise KindResolutionError(f"No resource is known for kind '{gvk}'")
        return mapping

    def kinds(self) -> list[GroupVersionKind]:
        """Return all kinds known to the mapper."""
        return sorted(self._mappings)


@dataclass
class APIResource(DataClassDictMixin):
    """A resource entry of a discovery document."""

    name: str
    kind: str
    namespaced: bool = False


@dataclass
class APIResourceList(DataClassDictMixin):
    """The discovery document of a single group version."""

    group_version: str = field(metadata=field_options(alias="groupVersion"))
    resources: list[APIResource] = field(default_factory=list)


async def _get_json(client: httpx.AsyncClient, path: str) -> dict[str, Any]:
    try:
        response = await client.get(path)
        response.raise_for_status()
        return response.json()  # type: ignore[no-any-return]
    except (httpx.HTTPError, ValueError) as err:
        _LOGGER.error("Failed to fetch discovery document %s: %s", path, err)
        raise DiscoveryError(
            f"Failed to fetch discovery document {path}: {err}"
        ) from err


async def _group_version_paths(client: httpx.AsyncClient) -> list[str]:
    core, groups = await asyncio.gather(
        _get_json(client, "/api"), _get_json(client, "/apis")
    )
    paths = [f"/api/{version}" for version in core.get("versions", [])]
    for group in groups.get("groups", []):
        for version in group.get("versions", []):
            if group_version := version.get("groupVersion"):
                paths.append(f"/apis/{group_version}")
    return paths


async def discover_rest_mapper(client: httpx.AsyncClient) -> StaticRESTMapper:
    """Build a RESTMapper from the discovery documents of the API server."""
    paths = await _group_version_paths(client)
    _LOGGER.debug("Discovering resources for %d group versions", len(paths))
    documents = await asyncio.gather(*(_get_json(client, path) for path in paths))
    mapper = StaticRESTMapper()
    for path, doc in zip(paths, documents):
        try:
            resource_list = APIResourceList.from_dict(doc)
        except (MissingField, ValueError, TypeError) as err:
            raise DiscoveryError(f"Invalid discovery document {path}: {err}") from err
        for resource in resource_list.resources:
            # Subresources such as pods/status are not listable kinds
            if "/" in resource.name:
                continue
            mapper.add_kind(
                GroupVersionKind.from_api_version(
                    resource_list.group_version, resource.kind
                ),
                resource.name,
                resource.namespaced,
            )
    _LOGGER.debug("Discovered %d kinds", len(mapper.kinds()))
    return mapper

"""Sources that list and watch the objects of a single kind."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from enum import StrEnum
import logging
from typing import Any, TYPE_CHECKING

import httpx
from kubernetes import watch

from .exceptions import ListWatchError
from .mapper import RESTMapping
from .selector import ObjectSelector

__all__ = [
    "EventType",
    "WatchEvent",
    "ListResult",
    "ListerWatcher",
    "RESTListerWatcher",
]

_LOGGER = logging.getLogger(__name__)


class EventType(StrEnum):
    """Type of change reported by a watch."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass
class WatchEvent:
    """A single change delivered by a watch."""

    type: EventType
    object: dict[str, Any]


@dataclass
class ListResult:
    """The objects returned by a list and the version to watch from."""

    items: list[dict[str, Any]]
    resource_version: str


class ListerWatcher(ABC):
    """Lists and watches the objects of a single kind."""

    @abstractmethod
    async def list(self) -> ListResult:
        """List all objects."""

    @abstractmethod
    async def watch(self, resource_version: str) -> AsyncGenerator[WatchEvent, None]:
        """Watch for changes after the resource version.

        The generator ends when the server closes the watch.

        Raises:
            ListWatchError: If the watch fails. A `status` of 410 means the
                resource version is too old and the caller must list again.
        """
        if TYPE_CHECKING:
            yield WatchEvent(EventType.BOOKMARK, {})


class RESTListerWatcher(ListerWatcher):
    """Lists and watches a resource through the API server."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        mapping: RESTMapping,
        namespace: str,
        selector: ObjectSelector,
    ) -> None:
        """Initialize RESTListerWatcher."""
        self._client = client
        self._selector = selector
        self._decoder = watch.Watch()
        resource = mapping.resource
        if mapping.namespaced and namespace:
            self._path = (
                f"{resource.api_path}/namespaces/{namespace}/{resource.resource}"
            )
        else:
            self._path = f"{resource.api_path}/{resource.resource}"

    @property
    def path(self) -> str:
        return self._path

    async def list(self) -> ListResult:
        try:
            response = await self._client.get(
                self._path, params=self._selector.query_params
            )
            response.raise_for_status()
            doc = response.json()
        except httpx.HTTPStatusError as err:
            raise ListWatchError(
                f"Failed to list {self._path}: {err}", err.response.status_code
            ) from err
        except (httpx.HTTPError, ValueError) as err:
            raise ListWatchError(f"Failed to list {self._path}: {err}") from err
        return ListResult(
            items=doc.get("items") or [],
            resource_version=doc.get("metadata", {}).get("resourceVersion", ""),
        )

    async def watch(self, resource_version: str) -> AsyncGenerator[WatchEvent, None]:
        params = {
            **self._selector.query_params,
            "watch": "true",
            "allowWatchBookmarks": "true",
            "resourceVersion": resource_version,
        }
        _LOGGER.debug("Watching %s from version %s", self._path, resource_version)
        try:
            async with self._client.stream(
                "GET", self._path, params=params, timeout=None
            ) as response:
                if response.status_code >= 400:
                    raise ListWatchError(
                        f"Failed to watch {self._path}: HTTP {response.status_code}",
                        response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    yield self._parse_event(line)
        except httpx.HTTPError as err:
            raise ListWatchError(f"Failed to watch {self._path}: {err}") from err

    def _parse_event(self, line: str) -> WatchEvent:
        try:
            doc = self._decoder.unmarshal_event(line, None)
            if doc is None:
                raise ValueError(f"not JSON: {line[:80]!r}")
            event = WatchEvent(type=EventType(doc["type"]), object=doc["raw_object"])
        except (ValueError, KeyError, TypeError) as err:
            raise ListWatchError(
                f"Invalid watch event from {self._path}: {err}"
            ) from err
        if event.type == EventType.ERROR:
            raise ListWatchError(
                f"Watch of {self._path} failed: {event.object.get('message')}",
                event.object.get("code"),
            )
        return event

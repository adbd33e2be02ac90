"""Test helpers for informer-cache."""

import asyncio
from collections.abc import AsyncGenerator, Callable, Coroutine
import contextlib
from typing import Any

import httpx

from informer_cache.informer import ResourceEventHandler
from informer_cache.listwatch import ListerWatcher, ListResult, WatchEvent
from informer_cache.mapper import RESTMapping
from informer_cache.selector import ObjectSelector


def pod_doc(
    name: str,
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    node_name: str | None = None,
    resource_version: str = "1",
) -> dict[str, Any]:
    """Return the raw document of a pod."""
    doc: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "resourceVersion": resource_version,
        },
        "spec": {},
    }
    if labels:
        doc["metadata"]["labels"] = labels
    if node_name:
        doc["spec"]["nodeName"] = node_name
    return doc


class Recorder(ResourceEventHandler):
    """Handler that records the events it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def on_add(self, obj: Any) -> None:
        self.events.append(("add", obj.name))

    def on_update(self, old: Any, new: Any) -> None:
        self.events.append(("update", new.name))

    def on_delete(self, obj: Any) -> None:
        self.events.append(("delete", obj.name))


class FakeListerWatcher(ListerWatcher):
    """A ListerWatcher serving fixed items and queued watch events.

    A watch ends when `None` is queued and fails when an exception is queued.
    """

    def __init__(
        self,
        items: list[dict[str, Any]] | None = None,
        resource_version: str = "10",
    ) -> None:
        self.items = list(items or [])
        self.resource_version = resource_version
        self.events: asyncio.Queue[WatchEvent | Exception | None] = asyncio.Queue()
        self.list_calls = 0
        self.watch_versions: list[str] = []

    async def list(self) -> ListResult:
        self.list_calls += 1
        return ListResult(list(self.items), self.resource_version)

    async def watch(self, resource_version: str) -> AsyncGenerator[WatchEvent, None]:
        self.watch_versions.append(resource_version)
        while (event := await self.events.get()) is not None:
            if isinstance(event, Exception):
                raise event
            yield event


class FakeListerWatcherFactory:
    """Creates a FakeListerWatcher per resource and namespace.

    Items are registered by resource name and served to every namespace they
    belong to.
    """

    def __init__(self) -> None:
        self.items: dict[str, list[dict[str, Any]]] = {}
        self.created: dict[tuple[str, str], FakeListerWatcher] = {}
        self.selectors: dict[tuple[str, str], ObjectSelector] = {}

    def __call__(
        self, mapping: RESTMapping, namespace: str, selector: ObjectSelector
    ) -> ListerWatcher:
        key = (mapping.resource.resource, namespace)
        items = self.items.get(mapping.resource.resource, [])
        if mapping.namespaced and namespace:
            items = [
                item for item in items if item["metadata"].get("namespace") == namespace
            ]
        lister_watcher = FakeListerWatcher(items)
        self.created[key] = lister_watcher
        self.selectors[key] = selector
        return lister_watcher


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Wait for background tasks to make the predicate true."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@contextlib.asynccontextmanager
async def started(
    start: Callable[[], Coroutine[Any, Any, None]],
) -> AsyncGenerator[asyncio.Task[None], None]:
    """Run the start function in the background until the block exits."""
    task = asyncio.create_task(start())
    await asyncio.sleep(0)
    try:
        yield task
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


DISCOVERY = {
    "/api": {"versions": ["v1"]},
    "/apis": {
        "groups": [
            {
                "name": "apps",
                "versions": [{"groupVersion": "apps/v1", "version": "v1"}],
            }
        ]
    },
    "/api/v1": {
        "groupVersion": "v1",
        "resources": [
            {"name": "pods", "kind": "Pod", "namespaced": True},
            {"name": "pods/status", "kind": "Pod", "namespaced": True},
            {"name": "configmaps", "kind": "ConfigMap", "namespaced": True},
            {"name": "namespaces", "kind": "Namespace", "namespaced": False},
        ],
    },
    "/apis/apps/v1": {
        "groupVersion": "apps/v1",
        "resources": [
            {"name": "deployments", "kind": "Deployment", "namespaced": True},
        ],
    },
}


def discovery_handler(request: httpx.Request) -> httpx.Response:
    """Serve the discovery documents of a small API server."""
    if (doc := DISCOVERY.get(request.url.path)) is None:
        return httpx.Response(404, json={"kind": "Status", "code": 404})
    return httpx.Response(200, json=doc)

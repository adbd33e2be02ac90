"""Tests for informers."""

import asyncio
import datetime
from typing import Any

import pytest

from informer_cache import informer as informer_module
from informer_cache.exceptions import CacheException, ListWatchError
from informer_cache.informer import ResourceEventHandlerFuncs, SharedInformer
from informer_cache.listwatch import EventType, WatchEvent
from informer_cache.resource import ObjectKey, Pod

from . import FakeListerWatcher, Recorder, pod_doc, started, wait_until


def new_informer(
    list_watcher: FakeListerWatcher, **kwargs: Any
) -> SharedInformer[Pod]:
    """Return an informer of pods."""
    return SharedInformer(Pod.group_version_kind(), Pod, list_watcher, **kwargs)


async def test_sync_and_watch() -> None:
    """Test the store follows the list and then the watch."""
    list_watcher = FakeListerWatcher([pod_doc("a"), pod_doc("b")])
    informer = new_informer(list_watcher)
    recorder = Recorder()
    informer.add_event_handler(recorder)
    assert not informer.has_synced()

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        assert informer.has_synced()
        assert recorder.events == [("add", "a"), ("add", "b")]

        list_watcher.events.put_nowait(
            WatchEvent(
                EventType.MODIFIED,
                pod_doc("a", node_name="node-1", resource_version="11"),
            )
        )
        list_watcher.events.put_nowait(
            WatchEvent(EventType.DELETED, pod_doc("b", resource_version="12"))
        )
        list_watcher.events.put_nowait(
            WatchEvent(EventType.ADDED, pod_doc("c", resource_version="13"))
        )
        await wait_until(lambda: len(recorder.events) == 5)

    assert recorder.events[2:] == [("update", "a"), ("delete", "b"), ("add", "c")]
    assert sorted(pod.name for pod in informer.list_objects()) == ["a", "c"]
    pod = informer.get_by_key(ObjectKey("default", "a"))
    assert pod is not None
    assert pod.spec.node_name == "node-1"
    assert informer.get_by_key(ObjectKey("default", "b")) is None
    assert list_watcher.watch_versions == ["10"]


async def test_bookmark_not_delivered() -> None:
    """Test bookmark events do not reach handlers."""
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)
    recorder = Recorder()
    informer.add_event_handler(recorder)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        list_watcher.events.put_nowait(
            WatchEvent(
                EventType.BOOKMARK,
                {"kind": "Pod", "metadata": {"resourceVersion": "15"}},
            )
        )
        list_watcher.events.put_nowait(
            WatchEvent(EventType.ADDED, pod_doc("b", resource_version="16"))
        )
        await wait_until(lambda: len(recorder.events) == 2)

    assert recorder.events == [("add", "a"), ("add", "b")]


async def test_handler_added_after_sync() -> None:
    """Test a late handler is sent the objects already in the store."""
    list_watcher = FakeListerWatcher([pod_doc("a"), pod_doc("b")])
    informer = new_informer(list_watcher)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        recorder = Recorder()
        informer.add_event_handler(recorder)
        assert sorted(recorder.events) == [("add", "a"), ("add", "b")]


async def test_remove_event_handler() -> None:
    """Test a removed handler stops receiving events."""
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)
    recorder = Recorder()
    registration = informer.add_event_handler(recorder)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        informer.remove_event_handler(registration)
        informer.remove_event_handler(registration)

        other = Recorder()
        informer.add_event_handler(other)
        list_watcher.events.put_nowait(
            WatchEvent(EventType.ADDED, pod_doc("b", resource_version="11"))
        )
        await wait_until(lambda: ("add", "b") in other.events)

    assert recorder.events == [("add", "a")]


async def test_failing_handler(caplog: pytest.LogCaptureFixture) -> None:
    """Test a handler that raises does not stop delivery to other handlers."""

    def fail(obj: Any) -> None:
        raise ValueError("handler failure")

    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)
    informer.add_event_handler(ResourceEventHandlerFuncs(add_func=fail))
    recorder = Recorder()
    informer.add_event_handler(recorder)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)

    assert recorder.events == [("add", "a")]
    assert "Event handler on_add failed" in caplog.text


def test_resource_event_handler_funcs() -> None:
    """Test callbacks are only invoked when provided."""
    seen: list[str] = []
    handler = ResourceEventHandlerFuncs(
        update_func=lambda old, new: seen.append(f"{old}->{new}")
    )
    handler.on_add("a")
    handler.on_update("a", "b")
    handler.on_delete("b")
    assert seen == ["a->b"]


async def test_transform() -> None:
    """Test objects are transformed before they are stored."""

    def strip_labels(pod: Pod) -> Pod:
        pod.metadata.labels = None
        return pod

    list_watcher = FakeListerWatcher([pod_doc("a", labels={"app": "web"})])
    informer = new_informer(list_watcher, transform=strip_labels)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)

    pod = informer.get_by_key(ObjectKey("default", "a"))
    assert pod is not None
    assert pod.labels == {}


async def test_transform_failure(caplog: pytest.LogCaptureFixture) -> None:
    """Test a failing transform prevents the informer from syncing."""

    def reject(pod: Pod) -> Pod:
        raise ValueError("rejected")

    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher, transform=reject)

    async with started(informer.run):
        await wait_until(lambda: "Transform failed" in caplog.text)
        assert not informer.has_synced()

    assert informer.list_objects() == []


async def test_indexers() -> None:
    """Test objects are found through an index kept current by the watch."""
    list_watcher = FakeListerWatcher(
        [
            pod_doc("a", node_name="node-1"),
            pod_doc("b", node_name="node-2"),
            pod_doc("c", node_name="node-1"),
        ]
    )
    informer = new_informer(list_watcher)
    informer.add_indexers(
        {"node": lambda pod: [pod.spec.node_name] if pod.spec.node_name else []}
    )
    assert informer.has_index("node")
    assert not informer.has_index("phase")
    with pytest.raises(CacheException, match="conflict"):
        informer.add_indexers({"node": lambda pod: []})

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        assert [pod.name for pod in informer.by_index("node", "node-1")] == [
            "a",
            "c",
        ]

        list_watcher.events.put_nowait(
            WatchEvent(
                EventType.MODIFIED,
                pod_doc("a", node_name="node-2", resource_version="11"),
            )
        )
        await wait_until(lambda: len(informer.by_index("node", "node-2")) == 2)
        assert [pod.name for pod in informer.by_index("node", "node-1")] == ["c"]

        list_watcher.events.put_nowait(
            WatchEvent(
                EventType.DELETED,
                pod_doc("c", node_name="node-1", resource_version="12"),
            )
        )
        await wait_until(lambda: not informer.by_index("node", "node-1"))

    with pytest.raises(CacheException, match="already synced"):
        informer.add_indexers({"phase": lambda pod: []})
    with pytest.raises(CacheException, match="does not exist"):
        informer.by_index("phase", "Running")


async def test_relist_when_watch_ends() -> None:
    """Test the informer lists again and reconciles when the watch ends."""
    list_watcher = FakeListerWatcher([pod_doc("a"), pod_doc("b")])
    informer = new_informer(list_watcher)
    recorder = Recorder()
    informer.add_event_handler(recorder)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        list_watcher.items = [pod_doc("b", resource_version="19")]
        list_watcher.resource_version = "20"
        list_watcher.events.put_nowait(None)
        await wait_until(lambda: len(list_watcher.watch_versions) == 2)

    assert list_watcher.list_calls == 2
    assert list_watcher.watch_versions == ["10", "20"]
    assert recorder.events[2:] == [("delete", "a"), ("update", "b")]
    assert [pod.name for pod in informer.list_objects()] == ["b"]


async def test_relist_when_watch_expires() -> None:
    """Test an expired watch leads to an immediate list."""
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        list_watcher.events.put_nowait(ListWatchError("too old", status=410))
        await wait_until(lambda: list_watcher.list_calls == 2)


async def test_watch_failure_backoff(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    """Test a failed watch is retried after a delay."""
    monkeypatch.setattr(informer_module, "MIN_BACKOFF", 0.01)
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)

    async with started(informer.run):
        await asyncio.wait_for(informer.wait_for_sync(), 2)
        list_watcher.events.put_nowait(ListWatchError("unavailable", status=503))
        await wait_until(lambda: list_watcher.list_calls == 2)

    assert "failed: unavailable" in caplog.text
    assert informer.has_synced()


async def test_resync() -> None:
    """Test handlers with a resync period are re-sent every object."""
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(list_watcher)
    recorder = Recorder()
    informer.add_event_handler_with_resync_period(
        recorder, datetime.timedelta(milliseconds=10)
    )
    quiet = Recorder()
    informer.add_event_handler(quiet)

    async with started(informer.run):
        await wait_until(lambda: recorder.events.count(("update", "a")) >= 2)

    assert quiet.events == [("add", "a")]


async def test_informer_resync_default() -> None:
    """Test handlers use the resync period of the informer by default."""
    list_watcher = FakeListerWatcher([pod_doc("a")])
    informer = new_informer(
        list_watcher, resync_every=datetime.timedelta(milliseconds=10)
    )
    recorder = Recorder()
    registration = informer.add_event_handler(recorder)
    assert registration.resync_period == datetime.timedelta(milliseconds=10)

    async with started(informer.run):
        await wait_until(lambda: ("update", "a") in recorder.events)


def test_non_positive_resync_period() -> None:
    """Test a resync period that is not positive disables resync."""
    informer = new_informer(FakeListerWatcher())
    registration = informer.add_event_handler_with_resync_period(
        Recorder(), datetime.timedelta(0)
    )
    assert registration.resync_period is None

"""Informers keep a local store of a single kind current by list and watch.

An informer lists every object of a kind, then watches for changes starting
at the version of the list. Each change is applied to the store and then
delivered to the registered event handlers. When the watch ends or the
version is too old the informer lists again.
"""

from abc import ABC, abstractmethod
import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
import datetime
import logging
import time
from typing import Any, Generic, TypeVar

from mashumaro.exceptions import MissingField

from .exceptions import CacheException, ListWatchError
from .kind import GroupVersionKind
from .listwatch import EventType, ListerWatcher, WatchEvent
from .resource import Object, ObjectKey
from .transform import TransformFunc

__all__ = [
    "ResourceEventHandler",
    "ResourceEventHandlerFuncs",
    "HandlerRegistration",
    "IndexFunc",
    "Indexers",
    "Informer",
    "SharedInformer",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=Object)

IndexFunc = Callable[[Any], list[str]]
"""Returns the index values of an object."""

Indexers = dict[str, IndexFunc]

HTTP_GONE = 410
"""Status of a watch whose resource version is too old."""

MIN_BACKOFF = 1.0
MAX_BACKOFF = 30.0


class ResourceEventHandler:
    """Receives notifications about the objects of an informer.

    Subclasses override the notifications they are interested in.
    """

    def on_add(self, obj: Any) -> None:
        """Called when an object enters the store."""

    def on_update(self, old: Any, new: Any) -> None:
        """Called when an object changes, or with the same object on resync."""

    def on_delete(self, obj: Any) -> None:
        """Called when an object leaves the store."""


class ResourceEventHandlerFuncs(ResourceEventHandler):
    """A handler built from optional callbacks."""

    def __init__(
        self,
        add_func: Callable[[Any], None] | None = None,
        update_func: Callable[[Any, Any], None] | None = None,
        delete_func: Callable[[Any], None] | None = None,
    ) -> None:
        self._add_func = add_func
        self._update_func = update_func
        self._delete_func = delete_func

    def on_add(self, obj: Any) -> None:
        if self._add_func is not None:
            self._add_func(obj)

    def on_update(self, old: Any, new: Any) -> None:
        if self._update_func is not None:
            self._update_func(old, new)

    def on_delete(self, obj: Any) -> None:
        if self._delete_func is not None:
            self._delete_func(obj)


@dataclass(eq=False)
class HandlerRegistration:
    """Handle returned when adding an event handler, used to remove it."""

    handler: ResourceEventHandler
    resync_period: datetime.timedelta | None = None
    next_resync: float = field(default=0.0, repr=False)


class Informer(ABC):
    """A local store of the objects of a single kind."""

    @abstractmethod
    def add_event_handler(self, handler: ResourceEventHandler) -> HandlerRegistration:
        """Add a handler using the resync period of the informer.

        Objects already in the store are delivered to the handler with
        `on_add`.
        """

    @abstractmethod
    def add_event_handler_with_resync_period(
        self,
        handler: ResourceEventHandler,
        resync_period: datetime.timedelta | None,
    ) -> HandlerRegistration:
        """Add a handler that is re-sent every object each resync period."""

    @abstractmethod
    def remove_event_handler(self, registration: HandlerRegistration) -> None:
        """Remove a handler. Removing a handler twice has no effect."""

    @abstractmethod
    def add_indexers(self, indexers: Indexers) -> None:
        """Add indexes to the store.

        Raises:
            CacheException: If the informer has synced or an index exists.
        """

    @abstractmethod
    def has_synced(self) -> bool:
        """Return true once the store holds the result of the first list."""


class SharedInformer(Informer, Generic[T]):
    """An informer backed by a ListerWatcher and an in memory store."""

    def __init__(
        self,
        gvk: GroupVersionKind,
        obj_type: type[T],
        list_watcher: ListerWatcher,
        resync_every: datetime.timedelta | None = None,
        transform: TransformFunc | None = None,
    ) -> None:
        """Initialize SharedInformer."""
        self._gvk = gvk
        self._obj_type = obj_type
        self._list_watcher = list_watcher
        self._resync_every = resync_every
        self._transform = transform
        self._store: dict[ObjectKey, T] = {}
        self._indexers: Indexers = {}
        self._indices: dict[str, defaultdict[str, set[ObjectKey]]] = {}
        self._registrations: list[HandlerRegistration] = []
        self._registrations_changed = asyncio.Event()
        self._synced = asyncio.Event()
        self._resource_version = ""

    @property
    def gvk(self) -> GroupVersionKind:
        return self._gvk

    @property
    def obj_type(self) -> type[T]:
        return self._obj_type

    def add_event_handler(self, handler: ResourceEventHandler) -> HandlerRegistration:
        return self.add_event_handler_with_resync_period(handler, self._resync_every)

    def add_event_handler_with_resync_period(
        self,
        handler: ResourceEventHandler,
        resync_period: datetime.timedelta | None,
    ) -> HandlerRegistration:
        if resync_period is not None and resync_period <= datetime.timedelta(0):
            resync_period = None
        registration = HandlerRegistration(handler, resync_period)
        if resync_period is not None:
            registration.next_resync = time.monotonic() + resync_period.total_seconds()
        self._registrations.append(registration)
        self._registrations_changed.set()
        for obj in list(self._store.values()):
            self._deliver(registration, "on_add", obj)
        return registration

    def remove_event_handler(self, registration: HandlerRegistration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)
            self._registrations_changed.set()

    def add_indexers(self, indexers: Indexers) -> None:
        if self.has_synced():
            raise CacheException(
                f"Informer for {self._gvk} has already synced, cannot add indexers"
            )
        for name in indexers:
            if name in self._indexers:
                raise CacheException(f"Indexer conflict: {name}")
        for name, func in indexers.items():
            self._indexers[name] = func
            self._indices[name] = defaultdict(set)
            for key, obj in self._store.items():
                for value in func(obj):
                    self._indices[name][value].add(key)

    def has_synced(self) -> bool:
        return self._synced.is_set()

    async def wait_for_sync(self) -> None:
        """Wait until the informer has synced."""
        await self._synced.wait()

    def get_by_key(self, key: ObjectKey) -> T | None:
        """Return the stored object with the key."""
        return self._store.get(key)

    def list_objects(self) -> list[T]:
        """Return all stored objects."""
        return list(self._store.values())

    def by_index(self, index_name: str, value: str) -> list[T]:
        """Return the stored objects whose index values include the value."""
        if (index := self._indices.get(index_name)) is None:
            raise CacheException(f"Index with name {index_name} does not exist")
        return [self._store[key] for key in sorted(index.get(value, ()))]

    def has_index(self, index_name: str) -> bool:
        """Return true if the store has the named index."""
        return index_name in self._indexers

    async def run(self) -> None:
        """List and watch until cancelled."""
        _LOGGER.debug("Starting informer for %s", self._gvk)
        resync_task = asyncio.create_task(self._resync_loop())
        backoff = MIN_BACKOFF
        try:
            while True:
                try:
                    await self._list_and_watch()
                    backoff = MIN_BACKOFF
                except ListWatchError as err:
                    if err.status == HTTP_GONE:
                        _LOGGER.debug(
                            "Watch of %s expired, listing again: %s", self._gvk, err
                        )
                        continue
                    _LOGGER.warning("Informer for %s failed: %s", self._gvk, err)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                except CacheException as err:
                    _LOGGER.warning("Informer for %s failed: %s", self._gvk, err)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
        finally:
            _LOGGER.debug("Stopping informer for %s", self._gvk)
            resync_task.cancel()

    async def _list_and_watch(self) -> None:
        result = await self._list_watcher.list()
        self._replace(self._decode(doc) for doc in result.items)
        self._resource_version = result.resource_version
        if not self._synced.is_set():
            _LOGGER.debug(
                "Informer for %s synced %d objects", self._gvk, len(self._store)
            )
            self._synced.set()
        async for event in self._list_watcher.watch(self._resource_version):
            self._handle_event(event)
        _LOGGER.debug("Watch of %s ended", self._gvk)

    def _decode(self, doc: dict[str, Any]) -> T:
        try:
            obj = self._obj_type.parse_doc(doc)
        except (MissingField, ValueError, TypeError) as err:
            raise CacheException(f"Invalid {self._gvk} object: {err}") from err
        if self._transform is None:
            return obj
        try:
            return self._transform(obj)  # type: ignore[no-any-return]
        except Exception as err:
            raise CacheException(
                f"Transform failed for {self._gvk} {ObjectKey.from_object(obj)}: {err}"
            ) from err

    def _handle_event(self, event: WatchEvent) -> None:
        if version := event.object.get("metadata", {}).get("resourceVersion"):
            self._resource_version = version
        if event.type == EventType.BOOKMARK:
            return
        obj = self._decode(event.object)
        key = ObjectKey.from_object(obj)
        if event.type == EventType.DELETED:
            old = self._store.get(key)
            self._remove(key)
            self._fire("on_delete", old if old is not None else obj)
            return
        old = self._store.get(key)
        self._put(key, obj)
        if old is None:
            self._fire("on_add", obj)
        else:
            self._fire("on_update", old, obj)

    def _replace(self, objs: Iterable[T]) -> None:
        new = {ObjectKey.from_object(obj): obj for obj in objs}
        for key in [key for key in self._store if key not in new]:
            old = self._store[key]
            self._remove(key)
            self._fire("on_delete", old)
        for key, obj in new.items():
            old = self._store.get(key)
            self._put(key, obj)
            if old is None:
                self._fire("on_add", obj)
            else:
                self._fire("on_update", old, obj)

    def _put(self, key: ObjectKey, obj: T) -> None:
        self._remove(key)
        self._store[key] = obj
        for name, func in self._indexers.items():
            for value in func(obj):
                self._indices[name][value].add(key)

    def _remove(self, key: ObjectKey) -> None:
        if (old := self._store.pop(key, None)) is None:
            return
        for name, func in self._indexers.items():
            index = self._indices[name]
            for value in func(old):
                index[value].discard(key)
                if not index[value]:
                    del index[value]

    async def _resync_loop(self) -> None:
        await self._synced.wait()
        while True:
            now = time.monotonic()
            for registration in list(self._registrations):
                if registration.resync_period is None:
                    continue
                if registration.next_resync > now:
                    continue
                for obj in list(self._store.values()):
                    self._deliver(registration, "on_update", obj, obj)
                registration.next_resync = (
                    now + registration.resync_period.total_seconds()
                )
            timeout = None
            if waits := [
                max(r.next_resync - now, 0.0)
                for r in self._registrations
                if r.resync_period is not None
            ]:
                timeout = min(waits)
            self._registrations_changed.clear()
            try:
                await asyncio.wait_for(self._registrations_changed.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    def _fire(self, method: str, *args: Any) -> None:
        for registration in list(self._registrations):
            self._deliver(registration, method, *args)

    def _deliver(
        self, registration: HandlerRegistration, method: str, *args: Any
    ) -> None:
        try:
            getattr(registration.handler, method)(*args)
        except Exception:
            _LOGGER.exception("Event handler %s failed for %s", method, self._gvk)

"""Registry of the informers of a cache, one per kind.

Informers are created lazily the first time a kind is requested. Once the
registry is started every informer runs until the registry is cancelled,
including informers created after it was started.
"""

import asyncio
from collections.abc import Callable, Mapping
import datetime
import logging
from typing import Any

import httpx

from .convert import gvk_for_object, type_for_kind
from .exceptions import CacheException
from .informer import SharedInformer
from .kind import DEFAULT_GVK, GroupVersionKind
from .listwatch import ListerWatcher, RESTListerWatcher
from .mapper import RESTMapper, RESTMapping
from .scheme import Scheme
from .selector import ObjectSelector
from .transform import TransformByKind

__all__ = [
    "ListerWatcherFactory",
    "InformersMap",
]

_LOGGER = logging.getLogger(__name__)

ListerWatcherFactory = Callable[[RESTMapping, str, ObjectSelector], ListerWatcher]
"""Creates the ListerWatcher for a resource within a namespace."""


def _rest_lister_watcher_factory(client: httpx.AsyncClient) -> ListerWatcherFactory:
    def factory(
        mapping: RESTMapping, namespace: str, selector: ObjectSelector
    ) -> ListerWatcher:
        return RESTListerWatcher(client, mapping, namespace, selector)

    return factory


class InformersMap:
    """Creates, starts and syncs the informers of a single namespace."""

    def __init__(
        self,
        scheme: Scheme,
        mapper: RESTMapper,
        namespace: str,
        resync_every: datetime.timedelta | None = None,
        selectors: Mapping[GroupVersionKind, ObjectSelector] | None = None,
        transforms: TransformByKind | None = None,
        disable_deep_copy: Mapping[GroupVersionKind, bool] | None = None,
        http_client: httpx.AsyncClient | None = None,
        lister_watcher_factory: ListerWatcherFactory | None = None,
    ) -> None:
        """Initialize InformersMap."""
        if lister_watcher_factory is None:
            if http_client is None:
                raise CacheException("InformersMap requires an HTTP client")
            lister_watcher_factory = _rest_lister_watcher_factory(http_client)
        self._scheme = scheme
        self._mapper = mapper
        self._namespace = namespace
        self._resync_every = resync_every
        self._selectors = dict(selectors or {})
        self._transforms = transforms or TransformByKind({})
        self._disable_deep_copy = dict(disable_deep_copy or {})
        self._lister_watcher_factory = lister_watcher_factory
        self._informers: dict[GroupVersionKind, SharedInformer[Any]] = {}
        self._tasks: dict[GroupVersionKind, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()
        self._started = False

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def scheme(self) -> Scheme:
        return self._scheme

    @property
    def mapper(self) -> RESTMapper:
        return self._mapper

    @property
    def started(self) -> bool:
        return self._started

    def selector_for(self, gvk: GroupVersionKind) -> ObjectSelector:
        """Return the selector restricting the objects of a kind."""
        if (selector := self._selectors.get(gvk)) is not None:
            return selector
        return self._selectors.get(DEFAULT_GVK, ObjectSelector())

    def deep_copy_disabled(self, gvk: GroupVersionKind) -> bool:
        """Return true if objects of a kind are returned without copying."""
        if gvk in self._disable_deep_copy:
            return self._disable_deep_copy[gvk]
        return self._disable_deep_copy.get(DEFAULT_GVK, False)

    async def get(
        self, obj: Any, block_until_synced: bool = True
    ) -> SharedInformer[Any]:
        """Return the informer for the kind of an object or class."""
        return await self.get_for_kind(
            gvk_for_object(obj, self._scheme), block_until_synced
        )

    async def get_for_kind(
        self, gvk: GroupVersionKind, block_until_synced: bool = True
    ) -> SharedInformer[Any]:
        """Return the informer for a kind, creating it if needed.

        When the registry is started and `block_until_synced` is set, waits
        for the informer to sync before returning.
        """
        async with self._lock:
            if (informer := self._informers.get(gvk)) is None:
                informer = self._create(gvk)
                self._informers[gvk] = informer
                if self._started:
                    self._start_informer(informer)
        if self._started and block_until_synced:
            await informer.wait_for_sync()
        return informer

    def _create(self, gvk: GroupVersionKind) -> SharedInformer[Any]:
        obj_type = type_for_kind(gvk, self._scheme)
        mapping = self._mapper.rest_mapping(gvk)
        selector = self.selector_for(gvk)
        lister_watcher = self._lister_watcher_factory(
            mapping, self._namespace, selector
        )
        _LOGGER.debug(
            "Creating informer for %s in namespace '%s'", gvk, self._namespace
        )
        return SharedInformer(
            gvk,
            obj_type,
            lister_watcher,
            resync_every=self._resync_every,
            transform=self._transforms.get(gvk),
        )

    def _start_informer(self, informer: SharedInformer[Any]) -> None:
        task = asyncio.create_task(informer.run(), name=f"informer-{informer.gvk}")
        task.add_done_callback(self._informer_done)
        self._tasks[informer.gvk] = task

    def _informer_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        if (err := task.exception()) is not None:
            _LOGGER.error(
                "Informer %s stopped unexpectedly: %s",
                task.get_name(),
                err,
                exc_info=err,
            )

    async def start(self) -> None:
        """Run all informers until cancelled."""
        async with self._lock:
            if self._started:
                raise CacheException("Informer map was already started")
            self._started = True
            for informer in self._informers.values():
                self._start_informer(informer)
        _LOGGER.debug("Started informers for namespace '%s'", self._namespace)
        try:
            await asyncio.get_running_loop().create_future()
        finally:
            tasks = list(self._tasks.values())
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            _LOGGER.debug("Stopped informers for namespace '%s'", self._namespace)

    async def wait_for_cache_sync(self, timeout: float | None = None) -> bool:
        """Wait for every informer to sync.

        Informers added while waiting are waited for as well. Returns False
        if the informers do not sync within the timeout.
        """
        try:
            await asyncio.wait_for(self._wait_for_all(), timeout)
        except asyncio.TimeoutError:
            _LOGGER.debug(
                "Timed out waiting for informers in namespace '%s'", self._namespace
            )
            return False
        return True

    async def _wait_for_all(self) -> None:
        waited: set[GroupVersionKind] = set()
        while pending := [
            informer
            for gvk, informer in self._informers.items()
            if gvk not in waited
        ]:
            await asyncio.gather(*(informer.wait_for_sync() for informer in pending))
            waited.update(informer.gvk for informer in pending)

"""A cache spanning a fixed set of namespaces.

The cache holds one `InformerCache` per namespace and fans reads, informers
and syncs out to them. Kinds that are not namespaced are served from a
single cluster scoped cache instead.
"""

import asyncio
from dataclasses import dataclass, field
import datetime
import logging
from typing import Any, TypeVar

from .cache import Cache, ExtractValueFunc, InformerCache
from .convert import gvk_for_object
from .exceptions import CacheException
from .fields import FieldSelector
from .informer import HandlerRegistration, Indexers, Informer, ResourceEventHandler
from .kind import GroupVersionKind
from .labels import LabelSelector
from .resource import Object, ObjectKey

__all__ = [
    "MultiNamespaceCache",
    "MultiNamespaceInformer",
    "MultiNamespaceRegistration",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=Object)


@dataclass(eq=False)
class MultiNamespaceRegistration(HandlerRegistration):
    """Registration of a handler with the informer of every namespace."""

    registrations: dict[str, HandlerRegistration] = field(default_factory=dict)


class MultiNamespaceInformer(Informer):
    """An informer delegating to one informer per namespace."""

    def __init__(self, informers: dict[str, Informer]) -> None:
        """Initialize MultiNamespaceInformer."""
        self._informers = informers

    def add_event_handler(self, handler: ResourceEventHandler) -> HandlerRegistration:
        return MultiNamespaceRegistration(
            handler,
            registrations={
                namespace: informer.add_event_handler(handler)
                for namespace, informer in self._informers.items()
            },
        )

    def add_event_handler_with_resync_period(
        self,
        handler: ResourceEventHandler,
        resync_period: datetime.timedelta | None,
    ) -> HandlerRegistration:
        return MultiNamespaceRegistration(
            handler,
            resync_period,
            registrations={
                namespace: informer.add_event_handler_with_resync_period(
                    handler, resync_period
                )
                for namespace, informer in self._informers.items()
            },
        )

    def remove_event_handler(self, registration: HandlerRegistration) -> None:
        if not isinstance(registration, MultiNamespaceRegistration):
            return
        for namespace, child in registration.registrations.items():
            if (informer := self._informers.get(namespace)) is not None:
                informer.remove_event_handler(child)

    def add_indexers(self, indexers: Indexers) -> None:
        for informer in self._informers.values():
            informer.add_indexers(indexers)

    def has_synced(self) -> bool:
        return all(informer.has_synced() for informer in self._informers.values())


class MultiNamespaceCache(Cache):
    """A cache of objects in a set of namespaces."""

    def __init__(
        self, namespaced: dict[str, InformerCache], cluster_scoped: InformerCache
    ) -> None:
        """Initialize MultiNamespaceCache."""
        if not namespaced:
            raise CacheException("MultiNamespaceCache requires at least one namespace")
        self._namespaced = namespaced
        self._cluster_scoped = cluster_scoped
        self._scheme = cluster_scoped.informers.scheme
        self._mapper = cluster_scoped.informers.mapper

    @property
    def namespaces(self) -> list[str]:
        return list(self._namespaced)

    def _is_namespaced(self, gvk: GroupVersionKind) -> bool:
        return self._mapper.is_namespaced(gvk)

    def _cache_for(self, namespace: str) -> InformerCache:
        if (cache := self._namespaced.get(namespace)) is None:
            raise CacheException(
                f"Namespace '{namespace}' is not one of the cached namespaces"
                f" {self.namespaces}"
            )
        return cache

    async def get(self, key: ObjectKey, obj_type: type[T]) -> T:
        gvk = gvk_for_object(obj_type, self._scheme)
        if not self._is_namespaced(gvk):
            return await self._cluster_scoped.get(key, obj_type)
        return await self._cache_for(key.namespace).get(key, obj_type)

    async def list(
        self,
        obj_type: type[T],
        namespace: str | None = None,
        label_selector: LabelSelector | None = None,
        field_selector: FieldSelector | None = None,
    ) -> list[T]:
        gvk = gvk_for_object(obj_type, self._scheme)
        if not self._is_namespaced(gvk):
            return await self._cluster_scoped.list(
                obj_type, None, label_selector, field_selector
            )
        if namespace:
            return await self._cache_for(namespace).list(
                obj_type, namespace, label_selector, field_selector
            )
        results = await asyncio.gather(
            *(
                cache.list(obj_type, None, label_selector, field_selector)
                for cache in self._namespaced.values()
            )
        )
        return [obj for result in results for obj in result]

    async def get_informer(self, obj: Any) -> Informer:
        return await self.get_informer_for_kind(gvk_for_object(obj, self._scheme))

    async def get_informer_for_kind(self, gvk: GroupVersionKind) -> Informer:
        if not self._is_namespaced(gvk):
            return await self._cluster_scoped.get_informer_for_kind(gvk)
        informers = await asyncio.gather(
            *(cache.get_informer_for_kind(gvk) for cache in self._namespaced.values())
        )
        return MultiNamespaceInformer(dict(zip(self._namespaced, informers)))

    async def start(self) -> None:
        _LOGGER.debug("Starting caches for namespaces %s", self.namespaces)
        await asyncio.gather(
            self._cluster_scoped.start(),
            *(cache.start() for cache in self._namespaced.values()),
        )

    async def wait_for_cache_sync(self, timeout: float | None = None) -> bool:
        results = await asyncio.gather(
            self._cluster_scoped.wait_for_cache_sync(timeout),
            *(
                cache.wait_for_cache_sync(timeout)
                for cache in self._namespaced.values()
            ),
        )
        return all(results)

    async def index_field(
        self, obj: Any, field: str, extract_value: ExtractValueFunc
    ) -> None:
        gvk = gvk_for_object(obj, self._scheme)
        if not self._is_namespaced(gvk):
            await self._cluster_scoped.index_field(obj, field, extract_value)
            return
        for cache in self._namespaced.values():
            await cache.index_field(obj, field, extract_value)

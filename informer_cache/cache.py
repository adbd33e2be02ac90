"""Caches serve reads of kubernetes objects from informers.

A cache reads from the informers of a single namespace, or fans out to one
such cache per namespace. Objects are copied before they are returned unless
copying is disabled for their kind.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
import copy
import logging
from typing import Any, TypeVar

from .convert import gvk_for_object
from .exceptions import CacheNotStartedError, ObjectNotFoundError
from .fields import FieldRequirement, FieldSelector
from .informer import Informer, SharedInformer
from .informers import InformersMap
from .kind import GroupVersionKind
from .labels import LabelSelector
from .resource import Object, ObjectKey

__all__ = [
    "NAMESPACE_ALL",
    "Reader",
    "Informers",
    "Cache",
    "InformerCache",
    "field_index_name",
    "key_to_namespaced_key",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=Object)

NAMESPACE_ALL = ""
"""Namespace value that selects every namespace."""

ALL_NAMESPACES_INDEX_PREFIX = "__all_namespaces"

ExtractValueFunc = Callable[[Any], list[str]]
"""Returns the values of an indexed field of an object."""


def field_index_name(field: str) -> str:
    """Return the name of the index for a field."""
    return f"field:{field}"


def key_to_namespaced_key(namespace: str, value: str) -> str:
    """Return the index value for a field value within a namespace."""
    if not namespace:
        return f"{ALL_NAMESPACES_INDEX_PREFIX}/{value}"
    return f"{namespace}/{value}"


def _index_func(extract_value: ExtractValueFunc) -> Callable[[Any], list[str]]:
    def index(obj: Any) -> list[str]:
        values = []
        for value in extract_value(obj):
            values.append(key_to_namespaced_key(NAMESPACE_ALL, value))
            if obj.namespace:
                values.append(key_to_namespaced_key(obj.namespace, value))
        return values

    return index


class Reader(ABC):
    """Reads objects from a cache."""

    @abstractmethod
    async def get(self, key: ObjectKey, obj_type: type[T]) -> T:
        """Return the object with the key.

        Raises:
            ObjectNotFoundError: If the object is not in the cache.
        """

    @abstractmethod
    async def list(
        self,
        obj_type: type[T],
        namespace: str | None = None,
        label_selector: LabelSelector | None = None,
        field_selector: FieldSelector | None = None,
    ) -> list[T]:
        """Return the objects of a kind matching the criteria.

        Exact matches on fields indexed with `index_field` are looked up
        through the index.
        """


class Informers(ABC):
    """Creates, starts and syncs the informers of a cache."""

    @abstractmethod
    async def get_informer(self, obj: Any) -> Informer:
        """Return the informer for the kind of an object or class."""

    @abstractmethod
    async def get_informer_for_kind(self, gvk: GroupVersionKind) -> Informer:
        """Return the informer for a kind."""

    @abstractmethod
    async def start(self) -> None:
        """Run all informers until cancelled."""

    @abstractmethod
    async def wait_for_cache_sync(self, timeout: float | None = None) -> bool:
        """Wait for all informers to sync, returning False on timeout."""

    @abstractmethod
    async def index_field(
        self, obj: Any, field: str, extract_value: ExtractValueFunc
    ) -> None:
        """Index objects of a kind by the values of a field.

        Must be called before the informer of the kind has synced.
        """


class Cache(Reader, Informers, ABC):
    """A cache of kubernetes objects."""


def _requirement_matches(req: FieldRequirement, fields: dict[str, str]) -> bool:
    if req.operator == "!=":
        return fields.get(req.field, "") != req.value
    return fields.get(req.field, "") == req.value


def _index_lookup(
    informer: SharedInformer[Any],
    namespace: str,
    field_selector: FieldSelector | None,
) -> tuple[list[Any], list[FieldRequirement]]:
    """Return the objects narrowed by indexed fields and the unchecked terms."""
    remaining: list[FieldRequirement] = []
    found: dict[ObjectKey, Any] | None = None
    for req in field_selector.requirements() if field_selector else []:
        index_name = field_index_name(req.field)
        if req.operator != "=" or not informer.has_index(index_name):
            remaining.append(req)
            continue
        matches = {
            ObjectKey.from_object(obj): obj
            for obj in informer.by_index(
                index_name, key_to_namespaced_key(namespace, req.value)
            )
        }
        if found is None:
            found = matches
        else:
            found = {key: obj for key, obj in found.items() if key in matches}
    if found is None:
        return informer.list_objects(), remaining
    return list(found.values()), remaining


class InformerCache(Cache):
    """A cache reading from the informers of a single namespace."""

    def __init__(self, informers: InformersMap) -> None:
        """Initialize InformerCache."""
        self._informers = informers

    @property
    def namespace(self) -> str:
        return self._informers.namespace

    @property
    def informers(self) -> InformersMap:
        return self._informers

    async def _synced_informer(self, gvk: GroupVersionKind) -> SharedInformer[Any]:
        informer = await self._informers.get_for_kind(gvk)
        if not informer.has_synced() and not self._informers.started:
            raise CacheNotStartedError("The cache is not started, can not read objects")
        return informer

    def _copy(self, gvk: GroupVersionKind, objs: Iterable[T]) -> list[T]:
        if self._informers.deep_copy_disabled(gvk):
            return list(objs)
        return [copy.deepcopy(obj) for obj in objs]

    async def get(self, key: ObjectKey, obj_type: type[T]) -> T:
        gvk = gvk_for_object(obj_type, self._informers.scheme)
        informer = await self._synced_informer(gvk)
        if not self._informers.mapper.is_namespaced(gvk):
            key = ObjectKey(NAMESPACE_ALL, key.name)
        if (obj := informer.get_by_key(key)) is None:
            raise ObjectNotFoundError(f"{gvk.kind} '{key}' not found")
        return self._copy(gvk, [obj])[0]

    async def list(
        self,
        obj_type: type[T],
        namespace: str | None = None,
        label_selector: LabelSelector | None = None,
        field_selector: FieldSelector | None = None,
    ) -> list[T]:
        gvk = gvk_for_object(obj_type, self._informers.scheme)
        informer = await self._synced_informer(gvk)
        if not self._informers.mapper.is_namespaced(gvk):
            namespace = None
        objs, remaining = _index_lookup(
            informer, namespace or NAMESPACE_ALL, field_selector
        )
        result = [
            obj
            for obj in objs
            if (not namespace or obj.namespace == namespace)
            and (label_selector is None or label_selector.matches(obj.labels))
            and all(_requirement_matches(req, obj.field_set()) for req in remaining)
        ]
        result.sort(key=ObjectKey.from_object)
        return self._copy(gvk, result)

    async def get_informer(self, obj: Any) -> Informer:
        return await self._informers.get(obj)

    async def get_informer_for_kind(self, gvk: GroupVersionKind) -> Informer:
        return await self._informers.get_for_kind(gvk)

    async def start(self) -> None:
        await self._informers.start()

    async def wait_for_cache_sync(self, timeout: float | None = None) -> bool:
        return await self._informers.wait_for_cache_sync(timeout)

    async def index_field(
        self, obj: Any, field: str, extract_value: ExtractValueFunc
    ) -> None:
        informer = await self._informers.get(obj, block_until_synced=False)
        _LOGGER.debug("Indexing %s by field %s", informer.gvk, field)
        informer.add_indexers({field_index_name(field): _index_func(extract_value)})

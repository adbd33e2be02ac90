"""Construction of caches from options.

Example usage:
```python
from informer_cache.builder import new_cache
from informer_cache.config import load_kube_config
from informer_cache.options import Options, ViewOptions
from informer_cache.resource import Pod

config = await load_kube_config()
cache = await new_cache(config, Options(view=ViewOptions(namespaces=["web"])))
task = asyncio.create_task(cache.start())
if await cache.wait_for_cache_sync(timeout=30):
    pods = await cache.list(Pod)
```
"""

from collections.abc import Awaitable, Callable
import dataclasses
import logging

from .cache import NAMESPACE_ALL, Cache, InformerCache
from .config import ConnectionConfig
from .convert import disable_deep_copy_to_kind_map, to_kind_map
from .defaults import apply_defaults
from .exceptions import CacheException
from .informers import InformersMap
from .multi_namespace import MultiNamespaceCache
from .options import Options
from .transform import TransformByKind

__all__ = [
    "NewCacheFunc",
    "new_cache",
    "builder_with_options",
]

_LOGGER = logging.getLogger(__name__)

NewCacheFunc = Callable[[ConnectionConfig, Options], Awaitable[Cache]]
"""Creates a cache from a connection config and inherited options."""


async def new_cache(config: ConnectionConfig, options: Options) -> Cache:
    """Create a cache from a connection config and options.

    Unset options are defaulted. The cache watches all namespaces unless the
    options name one or more namespaces.
    """
    options = await apply_defaults(options, config)
    scheme = options.scheme
    mapper = options.mapper
    if scheme is None or mapper is None:
        raise CacheException("Options must have a scheme and mapper")
    view = options.view
    selectors = to_kind_map(view.by_object.selectors, view.default_selector, scheme)
    transforms = TransformByKind(
        to_kind_map(view.by_object.transform, view.default_transform, scheme)
    )
    disable_deep_copy = disable_deep_copy_to_kind_map(
        view.by_object.unsafe_disable_deep_copy, scheme
    )

    def informers_for(namespace: str) -> InformersMap:
        return InformersMap(
            scheme,
            mapper,
            namespace,
            resync_every=options.resync_every,
            selectors=selectors,
            transforms=transforms,
            disable_deep_copy=disable_deep_copy,
            http_client=options.http_client,
        )

    namespaces = list(dict.fromkeys(view.namespaces)) or [NAMESPACE_ALL]
    if len(namespaces) == 1:
        _LOGGER.debug("Creating cache for namespace '%s'", namespaces[0])
        return InformerCache(informers_for(namespaces[0]))
    _LOGGER.debug("Creating cache for namespaces %s", namespaces)
    return MultiNamespaceCache(
        {ns: InformerCache(informers_for(ns)) for ns in namespaces},
        InformerCache(informers_for(NAMESPACE_ALL)),
    )


def builder_with_options(options: Options) -> NewCacheFunc:
    """Return a function creating caches from these options layered over others.

    Both the options given here and the options passed to the returned function
    are defaulted, then combined with the options given here taking precedence.
    The HTTP client, mapper and resync period not set here are taken from the
    defaulted inherited options, so discovery runs once.
    """

    async def new_cache_func(config: ConnectionConfig, inherited: Options) -> Cache:
        inherited = await apply_defaults(inherited, config)
        own = dataclasses.replace(options)
        if own.http_client is None:
            own.http_client = inherited.http_client
        if own.mapper is None:
            own.mapper = inherited.mapper
        if own.resync_every is None:
            own.resync_every = inherited.resync_every
        own = await apply_defaults(own, config)
        return await new_cache(config, own.inherit_from(inherited))

    return new_cache_func

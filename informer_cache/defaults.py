"""Fill unset options with process defaults."""

import dataclasses
import datetime
import logging

from .config import ConnectionConfig
from .exceptions import DiscoveryError, TransportError
from .mapper import discover_rest_mapper
from .options import Options
from .scheme import get_default_scheme
from .transport import http_client_for

__all__ = [
    "DEFAULT_RESYNC_EVERY",
    "apply_defaults",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_RESYNC_EVERY = datetime.timedelta(hours=10)
"""Period for re-delivering all objects, long enough to keep the load low."""


async def apply_defaults(options: Options, config: ConnectionConfig) -> Options:
    """Return a copy of the options with every unset field defaulted.

    Fields that are already set are left untouched, so applying the defaults
    more than once has no further effect.
    """
    options = dataclasses.replace(options)

    if options.http_client is None:
        try:
            options.http_client = http_client_for(config)
        except TransportError as err:
            _LOGGER.error("Failed to get HTTP client: %s", err)
            raise

    if options.scheme is None:
        options.scheme = get_default_scheme()

    if options.mapper is None:
        try:
            options.mapper = await discover_rest_mapper(options.http_client)
        except DiscoveryError as err:
            _LOGGER.error("Failed to get API Group-Resources: %s", err)
            raise DiscoveryError(
                f"Could not create RESTMapper from config: {err}"
            ) from err

    if options.resync_every is None:
        options.resync_every = DEFAULT_RESYNC_EVERY
    return options

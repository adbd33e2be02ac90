"""HTTP transport to the API server."""

import logging
import ssl

import httpx

from .config import ConnectionConfig
from .exceptions import TransportError

__all__ = ["http_client_for"]

_LOGGER = logging.getLogger(__name__)

USER_AGENT = "informer-cache"


def _ssl_context(config: ConnectionConfig) -> ssl.SSLContext | bool:
    if config.insecure_skip_tls_verify:
        return False
    context = ssl.create_default_context(cafile=config.ca_file)
    if config.client_cert_file:
        context.load_cert_chain(config.client_cert_file, config.client_key_file)
    return context


def _authorization(config: ConnectionConfig) -> str | None:
    if config.bearer_token:
        return f"Bearer {config.bearer_token}"
    return config.authorization


def http_client_for(config: ConnectionConfig) -> httpx.AsyncClient:
    """Create an HTTP client for the API server described by the config.

    Certificate files are the ones written by the kubeconfig loader, including
    temporary files holding inline certificate data.
    """
    if not config.host:
        raise TransportError("Connection config has no host")
    headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
    if authorization := _authorization(config):
        headers["Authorization"] = authorization
    try:
        verify = _ssl_context(config)
    except (ssl.SSLError, OSError) as err:
        raise TransportError(f"Invalid TLS configuration: {err}") from err
    _LOGGER.debug("Creating HTTP client for %s", config.host)
    return httpx.AsyncClient(
        base_url=config.host,
        headers=headers,
        verify=verify,
        timeout=config.timeout,
    )

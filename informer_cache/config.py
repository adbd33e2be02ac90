"""Configuration for connecting to the API server.

A `ConnectionConfig` may be loaded from a kubeconfig file or from the service
account mounted into a pod running inside the cluster. Both are read with the
loaders of the `kubernetes` client, so inline certificate data and exec
plugins in a kubeconfig are supported.
"""

import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path

from kubernetes.client import Configuration
from kubernetes.config import ConfigException
from kubernetes.config import kube_config
from kubernetes.config.incluster_config import InClusterConfigLoader
from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig
import yaml

from .exceptions import ConfigError

__all__ = [
    "ConnectionConfig",
    "load_kube_config",
    "in_cluster_config",
    "DEFAULT_KUBECONFIG",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"
KUBECONFIG_ENV = "KUBECONFIG"
SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_TIMEOUT = 30.0
BEARER = "bearer"


@dataclass
class ConnectionConfig(DataClassDictMixin):
    """How to reach and authenticate with the API server."""

    host: str
    """The base URL of the API server."""

    bearer_token: str | None = None
    """A bearer token sent with every request."""

    authorization: str | None = None
    """An Authorization header of another scheme, such as basic auth."""

    ca_file: str | None = None
    """Path to a PEM bundle used to verify the server certificate."""

    client_cert_file: str | None = None
    """Path to a client certificate for mutual TLS."""

    client_key_file: str | None = None
    """Path to the key of the client certificate."""

    insecure_skip_tls_verify: bool = False
    """Do not verify the server certificate."""

    timeout: float = DEFAULT_TIMEOUT
    """Timeout in seconds for requests other than watches."""

    class Config(BaseConfig):
        omit_none = True

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "ConnectionConfig":
        """Create a ConnectionConfig from a loaded client Configuration.

        Inline certificate data has already been written to files by the
        loader, so only paths are carried over.
        """
        bearer_token: str | None = None
        authorization: str | None = None
        auth = configuration.auth_settings().get("BearerToken")
        if auth and (value := (auth.get("value") or "").strip()):
            auth_scheme, _, credentials = value.partition(" ")
            if auth_scheme.lower() == BEARER:
                bearer_token = credentials.strip()
            else:
                authorization = value
        return cls(
            host=configuration.host,
            bearer_token=bearer_token,
            authorization=authorization,
            ca_file=configuration.ssl_ca_cert,
            client_cert_file=configuration.cert_file,
            client_key_file=configuration.key_file,
            insecure_skip_tls_verify=not configuration.verify_ssl,
        )


async def load_kube_config(
    path: Path | None = None, context: str | None = None
) -> ConnectionConfig:
    """Load a ConnectionConfig from a kubeconfig file.

    The path defaults to the `KUBECONFIG` environment variable or
    `~/.kube/config`. The context defaults to the current context of the file.
    Exec plugins are run in a worker thread.
    """
    if path is None:
        path = Path(os.environ.get(KUBECONFIG_ENV, str(DEFAULT_KUBECONFIG)))
    _LOGGER.debug("Loading kubeconfig %s", path)
    configuration = Configuration()
    try:
        await asyncio.to_thread(
            kube_config.load_kube_config,
            config_file=str(path),
            context=context,
            client_configuration=configuration,
            persist_config=False,
        )
    except (ConfigException, yaml.YAMLError, OSError) as err:
        raise ConfigError(f"Unable to load kubeconfig {path}: {err}") from err
    return ConnectionConfig.from_configuration(configuration)


async def in_cluster_config(
    service_account_dir: Path = SERVICE_ACCOUNT_DIR,
) -> ConnectionConfig:
    """Load a ConnectionConfig from the service account of the running pod."""
    configuration = Configuration()
    loader = InClusterConfigLoader(
        token_filename=str(service_account_dir / "token"),
        cert_filename=str(service_account_dir / "ca.crt"),
        try_refresh_token=False,
    )
    try:
        await asyncio.to_thread(loader.load_and_set, configuration)
    except (ConfigException, OSError) as err:
        raise ConfigError(f"Not running in a cluster: {err}") from err
    return ConnectionConfig.from_configuration(configuration)

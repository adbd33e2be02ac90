"""Test fixtures for informer-cache."""

from collections.abc import AsyncGenerator, Generator

import httpx
import pytest

from informer_cache.mapper import StaticRESTMapper
from informer_cache.resource import (
    ConfigMap,
    Deployment,
    Namespace,
    Pod,
    Secret,
    Service,
)
from informer_cache.scheme import Scheme, new_default_scheme, scheme_context

from . import FakeListerWatcherFactory, discovery_handler


@pytest.fixture(name="scheme")
def scheme_fixture() -> Generator[Scheme, None, None]:
    """Fixture that sets the default scheme to a fresh scheme."""
    with scheme_context(new_default_scheme()) as scheme:
        yield scheme


@pytest.fixture(name="mapper")
def mapper_fixture() -> StaticRESTMapper:
    """Fixture for a mapper serving the built-in resource types."""
    mapper = StaticRESTMapper()
    mapper.add_kind(Pod.group_version_kind(), "pods")
    mapper.add_kind(ConfigMap.group_version_kind(), "configmaps")
    mapper.add_kind(Secret.group_version_kind(), "secrets")
    mapper.add_kind(Service.group_version_kind(), "services")
    mapper.add_kind(Namespace.group_version_kind(), "namespaces", namespaced=False)
    mapper.add_kind(Deployment.group_version_kind(), "deployments")
    return mapper


@pytest.fixture(name="factory")
def factory_fixture() -> FakeListerWatcherFactory:
    """Fixture for creating fake list and watch sources."""
    return FakeListerWatcherFactory()


@pytest.fixture(name="http_client")
async def http_client_fixture() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Fixture for an HTTP client talking to a fake API server."""
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(discovery_handler),
        base_url="https://kube.example",
    ) as client:
        yield client

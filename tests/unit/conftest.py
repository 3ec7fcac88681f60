"""
Unit Test Fixtures.

Fixtures for unit tests. The registry is an in-process fakeredis server;
HTTP is mocked. Unit tests never touch a real Redis or network.
"""

import json
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any

import fakeredis
import fakeredis.aioredis
import pytest

from hydra_cli.core.utils import utc_now
from hydra_cli.profiles.models import Profile
from hydra_cli.registry.connection import RegistryConnection
from hydra_cli.registry.engine import RegistryEngine
from hydra_cli.registry.keys import RegistryKeys


# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    """One in-process Redis server shared by every client in a test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_factory(fake_server: fakeredis.FakeServer) -> Callable[..., Any]:
    """
    Client factory compatible with RegistryConnection.

    Connection keyword arguments are accepted and ignored; every client
    talks to the shared fake server.
    """
    def factory(**kwargs: Any) -> fakeredis.aioredis.FakeRedis:
        return fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)

    return factory


@pytest.fixture
def seed(fake_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """Synchronous client for arranging registry data."""
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def keys() -> RegistryKeys:
    return RegistryKeys(prefix="hydra:service")


@pytest.fixture
def profile() -> Profile:
    return Profile(name="local", url="127.0.0.1", port=6379, db=0)


@pytest.fixture
async def connection(
    profile: Profile,
    redis_factory: Callable[..., Any],
) -> AsyncGenerator[RegistryConnection, None]:
    """An open connection to the fake registry."""
    conn = RegistryConnection(profile, timeout=1.0, client_factory=redis_factory)
    await conn.open()
    yield conn
    await conn.close()


@pytest.fixture
def engine(connection: RegistryConnection, keys: RegistryKeys) -> RegistryEngine:
    return RegistryEngine(connection, keys, active_threshold=15)


# =============================================================================
# Data Helpers
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for elapsed-second math."""
    return utc_now().replace(microsecond=0)


@pytest.fixture
def add_node(seed: fakeredis.FakeRedis, keys: RegistryKeys, now: datetime) -> Callable[..., dict]:
    """Register a node that last reported `age` seconds before `now`."""
    def _add(service: str, instance_id: str, age: int, **extra: Any) -> dict:
        document = {
            "serviceName": service,
            "instanceID": instance_id,
            "updatedOn": (now - timedelta(seconds=age)).isoformat(),
            **extra,
        }
        seed.hset(keys.nodes, instance_id, json.dumps(document))
        return document

    return _add

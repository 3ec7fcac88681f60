"""
Registry Connection.

Opens and holds the Redis connection for one invocation using the active
profile. Opening is bounded: the handshake races a fixed timer and whichever
settles first decides the outcome. There is no automatic retry.

State machine:
    DISCONNECTED → CONNECTING → READY | FAILED, then CLOSED after close()

Usage:
    connection = RegistryConnection(profile, timeout=5)
    await connection.open()
    nodes = await connection.client.hgetall("hydra:service:nodes")

    async with connection.secondary() as admin:
        info = await admin.info()

    await connection.close()
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from hydra_cli.core.exceptions import ConnectionTimeoutError, RegistryConnectionError
from hydra_cli.core.logging import get_logger, log_with_source
from hydra_cli.profiles.models import Profile

logger = get_logger(__name__)

ClientFactory = Callable[..., redis.Redis]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class RegistryConnection:
    """
    Bounded-time connection to the registry.

    At most one primary client exists per connection object. Secondary
    clients are opened for single administrative commands and are always
    closed before the primary.
    """

    def __init__(
        self,
        profile: Profile,
        timeout: float = 5.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """
        Initialize the connection.

        Args:
            profile: Active connection profile
            timeout: Seconds allowed for the handshake
            client_factory: Builds a redis.asyncio client from keyword
                arguments. Defaults to redis.asyncio.Redis.
        """
        self.profile = profile
        self.timeout = timeout
        self.state = ConnectionState.DISCONNECTED
        self._client_factory = client_factory or redis.Redis
        self._client: redis.Redis | None = None
        self._secondaries: list[redis.Redis] = []

    def _new_client(self) -> redis.Redis:
        return self._client_factory(
            host=self.profile.url,
            port=self.profile.port,
            db=self.profile.db,
            password=self.profile.password or None,
            decode_responses=True,
        )

    @property
    def client(self) -> redis.Redis:
        """The primary client. Only valid once the connection is READY."""
        if self.state is not ConnectionState.READY or self._client is None:
            raise RegistryConnectionError(f"Registry connection is {self.state.value}")
        return self._client

    async def open(self) -> "RegistryConnection":
        """
        Perform the handshake within the configured timeout.

        Raises:
            ConnectionTimeoutError: If the timer fires first
            RegistryConnectionError: If the handshake fails outright
        """
        if self.state is ConnectionState.READY:
            return self
        if self.state is not ConnectionState.DISCONNECTED:
            raise RegistryConnectionError(f"Registry connection is {self.state.value}")

        self.state = ConnectionState.CONNECTING
        client = self._new_client()
        log_with_source(
            logger, "registry", "debug", "Connecting to registry",
            profile=self.profile.name, address=self.profile.describe(),
        )

        try:
            async with asyncio.timeout(self.timeout):
                await client.ping()
        except (TimeoutError, RedisTimeoutError) as e:
            self.state = ConnectionState.FAILED
            await _discard(client)
            log_with_source(
                logger, "registry", "warning", "Registry connection timed out",
                profile=self.profile.name, timeout=self.timeout,
            )
            raise ConnectionTimeoutError(
                f"Unable to connect to {self.profile.describe()} "
                f"(profile '{self.profile.name}') within {self.timeout:g}s. "
                "Check the address or switch profiles with `hydra-cli use <name>`."
            ) from e
        except (RedisError, OSError) as e:
            self.state = ConnectionState.FAILED
            await _discard(client)
            raise RegistryConnectionError(str(e)) from e

        self._client = client
        self.state = ConnectionState.READY
        log_with_source(logger, "registry", "info", "Connected to registry", profile=self.profile.name)
        return self

    @asynccontextmanager
    async def secondary(self) -> AsyncIterator[redis.Redis]:
        """
        Yield a short-lived extra client for one administrative command.

        Raises:
            RegistryConnectionError: If the primary connection is not READY
        """
        if self.state is not ConnectionState.READY:
            raise RegistryConnectionError(f"Registry connection is {self.state.value}")

        client = self._new_client()
        self._secondaries.append(client)
        try:
            yield client
        finally:
            if client in self._secondaries:
                self._secondaries.remove(client)
                await _discard(client)

    async def close(self) -> None:
        """Release secondary clients, then the primary. Safe to call repeatedly."""
        while self._secondaries:
            await _discard(self._secondaries.pop())

        if self._client is not None:
            client, self._client = self._client, None
            await _discard(client)
            log_with_source(logger, "registry", "debug", "Registry connection closed")

        if self.state is not ConnectionState.FAILED:
            self.state = ConnectionState.CLOSED


async def _discard(client: Any) -> None:
    """Close a client, logging instead of raising."""
    try:
        await client.aclose()
    except (RedisError, OSError, RuntimeError) as e:
        logger.debug("Ignoring error while closing redis client", error=str(e))


async def open_connection(
    profile: Profile,
    timeout: float,
    client_factory: ClientFactory | None = None,
) -> RegistryConnection:
    """Create and open a connection in one step."""
    connection = RegistryConnection(profile, timeout=timeout, client_factory=client_factory)
    return await connection.open()

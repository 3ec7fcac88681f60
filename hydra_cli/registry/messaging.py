"""
Message Transport.

Delivers envelopes to Hydra services. Immediate delivery publishes on the
service's message channel, durable delivery pushes onto its message queue,
and REST requests go over HTTP (httpx) to a live instance taken from the
node map.

Usage:
    messenger = HydraMessenger(connection, keys, timeout=30)
    await messenger.send(envelope)
    await messenger.queue(envelope)
    result = await messenger.request(envelope, node)
    await messenger.close()
"""

import json
from typing import Any, Protocol

import httpx

from hydra_cli.core.exceptions import UpstreamError
from hydra_cli.core.logging import get_logger, log_with_source
from hydra_cli.registry.connection import RegistryConnection
from hydra_cli.registry.keys import RegistryKeys
from hydra_cli.registry.models import BODYLESS_METHODS, Envelope, NodeEntry

logger = get_logger(__name__)


class MessageTransport(Protocol):
    """The narrow interface the engine uses to move envelopes."""

    async def send(self, envelope: Envelope) -> int: ...

    async def queue(self, envelope: Envelope) -> int: ...

    async def request(self, envelope: Envelope, node: NodeEntry) -> Any: ...

    async def close(self) -> None: ...


class HydraMessenger:
    """
    Redis and HTTP backed message transport.

    Features:
    - Pub/sub delivery on `<prefix>:mc:<service>[:<instance>]`
    - Queued delivery on `<prefix>:<service>:mqrecieved`
    - HTTP request/response against a registered instance
    - Structured logging of every transport call
    """

    def __init__(
        self,
        connection: RegistryConnection,
        keys: RegistryKeys,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the messenger.

        Args:
            connection: Open registry connection
            keys: Registry key namespace
            timeout: HTTP request timeout in seconds
        """
        self.connection = connection
        self.keys = keys
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "hydra-cli"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def send(self, envelope: Envelope) -> int:
        """
        Publish an envelope for immediate delivery.

        Returns:
            Number of subscribers that received it
        """
        route = envelope.route()
        channel = self.keys.message_channel(route.service_name, route.instance_id)
        receivers = await self.connection.client.publish(channel, json.dumps(envelope.to_wire()))
        log_with_source(
            logger, "messaging", "info", "Message sent",
            channel=channel, mid=envelope.mid, receivers=receivers,
        )
        return receivers

    async def queue(self, envelope: Envelope) -> int:
        """
        Push an envelope onto the service's durable queue.

        Returns:
            Queue length after the push
        """
        route = envelope.route()
        queue_key = self.keys.message_queue(route.service_name)
        length = await self.connection.client.lpush(queue_key, json.dumps(envelope.to_wire()))
        log_with_source(
            logger, "messaging", "info", "Message queued",
            queue=queue_key, mid=envelope.mid, length=length,
        )
        return length

    async def request(self, envelope: Envelope, node: NodeEntry) -> Any:
        """
        Perform an HTTP exchange with one service instance.

        Returns:
            Parsed JSON when the instance answers with JSON, text otherwise

        Raises:
            UpstreamError: If the node has no address or the request fails
        """
        route = envelope.route()
        extra = node.model_extra or {}
        host, port = extra.get("ip"), extra.get("port")
        if not host or not port:
            raise UpstreamError(f"Instance {node.instance_id} has no registered address")

        url = f"http://{host}:{port}{route.path}"
        kwargs: dict[str, Any] = {"headers": envelope.headers or {}}
        if route.method not in BODYLESS_METHODS:
            kwargs["json"] = envelope.body

        client = await self._get_client()
        log_with_source(
            logger, "messaging", "debug", "REST request",
            method=route.method.upper(), url=url, mid=envelope.mid,
        )

        try:
            response = await client.request(route.method.upper(), url, **kwargs)
        except httpx.HTTPError as e:
            log_with_source(
                logger, "messaging", "error", "REST request failed",
                method=route.method.upper(), url=url, error=str(e),
            )
            raise UpstreamError(f"{route.method.upper()} {url} failed: {e}") from e

        log_with_source(
            logger, "messaging", "debug", "REST response",
            method=route.method.upper(), url=url, status_code=response.status_code,
        )
        return decode_body(response)


def decode_body(response: httpx.Response) -> Any:
    """Return JSON when the response declares it, otherwise text."""
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    return response.content.decode(response.encoding or "utf-8", errors="replace")

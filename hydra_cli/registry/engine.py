"""
Registry Engine.

Query and mutation operations over an open registry connection. Every
operation is a coroutine; multi-key reads are issued one after another
(or as one pipeline) and never raced against each other.

Usage:
    from hydra_cli.registry.engine import RegistryEngine

    engine = RegistryEngine(connection, RegistryKeys.from_config(), messenger)
    nodes = await engine.list_nodes("billing-service")
    removed = await engine.prune_stale_nodes(60)
    await engine.push_config("billing-service:1.0.2", {"maxRetries": 3})
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from hydra_cli.core.exceptions import InvalidArgumentsError, NotFoundError, UpstreamError
from hydra_cli.core.logging import get_logger, log_with_source
from hydra_cli.core.utils import utc_now
from hydra_cli.registry.connection import RegistryConnection
from hydra_cli.registry.keys import (
    CONFIGS_SUFFIX,
    ROUTES_SUFFIX,
    SERVICE_SUFFIX,
    RegistryKeys,
)
from hydra_cli.registry.messaging import MessageTransport
from hydra_cli.registry.models import (
    BODYLESS_METHODS,
    ConfigLabel,
    Envelope,
    HealthEntry,
    HealthSnapshot,
    NodeEntry,
    RouteSpec,
)

logger = get_logger(__name__)

CLI_ROUTE = "hydra-cli:/"


class RegistryEngine:
    """
    Operations against the Hydra registry.

    Args:
        connection: Open registry connection
        keys: Registry key namespace
        messenger: Transport for send/queue/REST. Required only by the
            messaging operations.
        active_threshold: Seconds within which a node counts as active
    """

    def __init__(
        self,
        connection: RegistryConnection,
        keys: RegistryKeys,
        messenger: MessageTransport | None = None,
        active_threshold: int = 15,
    ) -> None:
        self.connection = connection
        self.keys = keys
        self.messenger = messenger
        self.active_threshold = active_threshold

    @property
    def redis(self) -> Any:
        return self.connection.client

    # =========================================================================
    # Nodes
    # =========================================================================

    async def _read_nodes(self) -> list[NodeEntry]:
        raw = await self.redis.hgetall(self.keys.nodes)
        nodes = []
        for instance_id, value in raw.items():
            try:
                nodes.append(NodeEntry.model_validate(json.loads(value)))
            except (json.JSONDecodeError, ValidationError) as e:
                log_with_source(
                    logger, "registry", "warning", "Skipping malformed node entry",
                    instance_id=instance_id, error=str(e),
                )
        return nodes

    async def list_nodes(
        self,
        service_name: str | None = None,
        active_only: bool = False,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """
        List node entries with their `elapsed` seconds.

        Args:
            service_name: Keep only instances of this service
            active_only: Keep only entries younger than the active threshold
            now: Reference time, defaults to the current UTC time

        Returns:
            Node entries sorted by service name, then freshest first
        """
        now = now or utc_now()
        results = []
        for node in await self._read_nodes():
            if service_name and node.service_name != service_name:
                continue
            entry = node.to_output(now)
            if active_only and entry["elapsed"] >= self.active_threshold:
                continue
            results.append(entry)
        results.sort(key=lambda entry: (entry["serviceName"], entry["elapsed"]))
        return results

    async def prune_stale_nodes(self, stale_threshold: int, now: datetime | None = None) -> int:
        """
        Remove nodes that have not reported within `stale_threshold` seconds.

        All stale IDs are removed with a single HDEL.

        Returns:
            Number of entries removed; 0 when nothing was stale
        """
        now = now or utc_now()
        stale = [
            node.instance_id
            for node in await self._read_nodes()
            if node.elapsed(now) > stale_threshold
        ]
        if not stale:
            return 0

        removed = await self.redis.hdel(self.keys.nodes, *stale)
        log_with_source(
            logger, "registry", "info", "Pruned stale nodes",
            removed=removed, threshold=stale_threshold,
        )
        return int(removed)

    # =========================================================================
    # Services and routes
    # =========================================================================

    async def _scan(self, pattern: str) -> list[str]:
        return sorted({key async for key in self.redis.scan_iter(match=pattern)})

    async def list_routes(self, service_name: str | None = None) -> dict[str, list[str]]:
        """
        Aggregate route patterns per service.

        Services without routes are omitted rather than listed empty.
        """
        routes: dict[str, list[str]] = {}
        for key in await self._scan(self.keys.routes_pattern):
            name = self.keys.service_name_from(key, ROUTES_SUFFIX)
            if name is None or (service_name and name != service_name):
                continue
            members = await self.redis.smembers(key)
            if members:
                routes[name] = sorted(members)
        return routes

    async def _service_names(self) -> list[str]:
        names = []
        for key in await self._scan(self.keys.service_pattern):
            name = self.keys.service_name_from(key, SERVICE_SUFFIX)
            if name is not None:
                names.append(name)
        return names

    async def list_services(self, service_name: str | None = None) -> list[dict[str, Any]]:
        """
        Return the registration record of every (or one) service.

        Records are JSON strings; a record that does not decode to an
        object is skipped.
        """
        services = []
        for name in await self._service_names():
            if service_name and name != service_name:
                continue
            key = self.keys.service(name)
            raw = await self.redis.get(key)
            if raw is None:
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.debug("Skipping malformed service record", key=key, error=str(e))
                continue
            if not isinstance(record, dict):
                logger.debug("Skipping malformed service record", key=key)
                continue
            services.append({"serviceName": name, **record})
        return services

    # =========================================================================
    # Health
    # =========================================================================

    async def get_health(self, service_name: str | None = None) -> list[list[dict[str, Any]]]:
        """
        Latest health snapshots, one list per known service.

        With a filter, keeps lists whose first snapshot names that service.
        Empty lists are never indexed and never returned.
        """
        results = []
        for name in await self._service_names():
            snapshots = []
            for key in await self._scan(self.keys.health_pattern(name)):
                raw = await self.redis.get(key)
                if raw is None:
                    continue
                try:
                    snapshots.append(HealthSnapshot.model_validate(json.loads(raw)).to_output())
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.debug("Skipping malformed health snapshot", key=key, error=str(e))
            if not snapshots:
                continue
            if service_name and snapshots[0].get("serviceName") != service_name:
                continue
            results.append(snapshots)
        return results

    async def get_health_log(self, service_name: str, limit: int = 100) -> list[dict[str, Any]]:
        """
        Health log entries for every instance of a service.

        All matching logs are read in one MULTI/EXEC pipeline so that every
        instance is observed at the same point in time.

        Returns:
            Parsed entries; an empty list when no instance has a log
        """
        keys = await self._scan(self.keys.health_log_pattern(service_name))
        if not keys:
            return []

        async with self.redis.pipeline(transaction=True) as pipe:
            for key in keys:
                pipe.lrange(key, 0, limit)
            batches = await pipe.execute()

        entries = []
        for key, batch in zip(keys, batches):
            for raw in batch:
                try:
                    entries.append(HealthEntry.model_validate(json.loads(raw)).to_output())
                except (json.JSONDecodeError, ValidationError, TypeError) as e:
                    logger.debug("Skipping malformed health log entry", key=key, error=str(e))
        return entries

    # =========================================================================
    # Versioned configs
    # =========================================================================

    async def list_config_versions(self, service_name: str) -> list[str]:
        """Labels of every stored config version for one service."""
        versions = await self.redis.hkeys(self.keys.configs(service_name))
        return sorted(f"{service_name}:{version}" for version in versions)

    async def list_all_config_versions(self) -> list[str]:
        """Labels of every stored config version across services."""
        labels = []
        for key in await self._scan(self.keys.configs_pattern):
            name = self.keys.service_name_from(key, CONFIGS_SUFFIX)
            if name is not None:
                labels.extend(await self.list_config_versions(name))
        return labels

    async def pull_config(self, label: str) -> Any:
        """
        Fetch one stored config.

        Raises:
            InvalidArgumentsError: If the label is malformed
            NotFoundError: If no config is stored under the label
            UpstreamError: If the stored value is not JSON
        """
        parsed = ConfigLabel.parse(label)
        raw = await self.redis.hget(self.keys.configs(parsed.service_name), parsed.version)
        if raw is None:
            raise NotFoundError(f"Config {parsed} not found")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise UpstreamError(f"Config {parsed} is not valid JSON: {e}") from e

    async def push_config(self, label: str, payload: Any) -> str:
        """Store a config under a label, replacing any previous value."""
        parsed = ConfigLabel.parse(label)
        await self.redis.hset(
            self.keys.configs(parsed.service_name), parsed.version, json.dumps(payload),
        )
        log_with_source(logger, "registry", "info", "Config pushed", label=str(parsed))
        return str(parsed)

    async def remove_config_version(self, label: str) -> bool:
        """
        Delete one stored config.

        Returns:
            True only when the registry reports a deletion
        """
        parsed = ConfigLabel.parse(label)
        deleted = await self.redis.hdel(self.keys.configs(parsed.service_name), parsed.version)
        log_with_source(logger, "registry", "info", "Config remove", label=str(parsed), deleted=deleted)
        return bool(deleted)

    # =========================================================================
    # Messaging
    # =========================================================================

    def _transport(self) -> MessageTransport:
        if self.messenger is None:
            raise UpstreamError("No message transport configured")
        return self.messenger

    async def send_message(self, envelope: Envelope) -> int:
        """Hand an envelope over for immediate delivery."""
        return await self._transport().send(envelope)

    async def queue_message(self, envelope: Envelope) -> int:
        """Hand an envelope over for durable queuing."""
        return await self._transport().queue(envelope)

    async def _pick_instance(self, route: RouteSpec) -> NodeEntry:
        now = utc_now()
        candidates = [
            node for node in await self._read_nodes()
            if node.service_name == route.service_name
            and (route.instance_id is None or node.instance_id == route.instance_id)
        ]
        if not candidates:
            raise NotFoundError(f"No registered instance of {route.service_name}")
        return min(candidates, key=lambda node: node.elapsed(now))

    async def rest_invoke(self, route_spec: str, payload_file: str | Path | None = None) -> Any:
        """
        Call a service route and return its response.

        Raises:
            InvalidArgumentsError: If the route is malformed, a payload is
                given for GET/DELETE, or the payload file is not JSON
            NotFoundError: If no instance of the service is registered
        """
        route = check_rest_arguments(route_spec, payload_file)
        body = await load_json_file(payload_file) if payload_file is not None else {}
        envelope = Envelope(to=route.to_umf(), from_=CLI_ROUTE, body=body)
        transport = self._transport()
        node = await self._pick_instance(route)
        return await transport.request(envelope, node)

    # =========================================================================
    # Administration
    # =========================================================================

    async def redis_info(self) -> dict[str, Any]:
        """Server INFO, read over a secondary connection."""
        async with self.connection.secondary() as admin:
            return await admin.info()


def check_rest_arguments(route_spec: str, payload_file: str | Path | None = None) -> RouteSpec:
    """
    Validate a REST call's shape without touching files or the network.

    Raises:
        InvalidArgumentsError: If the route is malformed or a payload is
            supplied for GET/DELETE
    """
    route = RouteSpec.parse(route_spec)
    if payload_file is not None and route.method in BODYLESS_METHODS:
        raise InvalidArgumentsError(
            f"A payload cannot be sent with {route.method.upper()} requests",
        )
    return route


async def load_json_file(path: str | Path) -> Any:
    """
    Read and decode a JSON file without blocking the event loop.

    Raises:
        InvalidArgumentsError: If the file is missing, unreadable or not JSON
    """
    file_path = Path(path).expanduser()
    try:
        raw = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
    except OSError as e:
        raise InvalidArgumentsError(f"Unable to read {file_path}: {e.strerror or e}") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidArgumentsError(f"{file_path} is not valid JSON: {e}") from e

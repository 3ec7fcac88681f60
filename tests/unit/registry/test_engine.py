"""
Unit Tests for the Registry Engine.

Runs every query and mutation against an in-process fakeredis server.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from hydra_cli.core.exceptions import InvalidArgumentsError, NotFoundError, UpstreamError
from hydra_cli.registry.engine import (
    CLI_ROUTE,
    RegistryEngine,
    check_rest_arguments,
    load_json_file,
)
from hydra_cli.registry.models import Envelope


def _health_entry(message: str, pid: int = 100) -> str:
    return json.dumps({"type": "info", "ts": "2024-01-01T00:00:00Z", "processID": pid, "msg": message})


# =============================================================================
# Nodes
# =============================================================================


class TestListNodes:
    """Tests for node listing."""

    async def test_elapsed_seconds(self, engine, add_node, now):
        add_node("billing", "i1", age=30)

        nodes = await engine.list_nodes(now=now)

        assert len(nodes) == 1
        assert nodes[0]["instanceID"] == "i1"
        assert nodes[0]["elapsed"] == 30

    async def test_elapsed_against_wall_clock(self, engine, add_node):
        add_node("billing", "i1", age=30)
        nodes = await engine.list_nodes()
        assert 29 <= nodes[0]["elapsed"] <= 31

    async def test_sorted_by_service_then_freshness(self, engine, add_node, now):
        add_node("orders", "o1", age=3)
        add_node("billing", "b1", age=20)
        add_node("billing", "b2", age=2)

        nodes = await engine.list_nodes(now=now)

        assert [node["instanceID"] for node in nodes] == ["b2", "b1", "o1"]

    async def test_service_filter(self, engine, add_node, now):
        add_node("orders", "o1", age=3)
        add_node("billing", "b1", age=3)

        nodes = await engine.list_nodes("orders", now=now)

        assert [node["serviceName"] for node in nodes] == ["orders"]

    async def test_active_only(self, engine, add_node, now):
        add_node("billing", "fresh", age=5)
        add_node("billing", "old", age=45)

        nodes = await engine.list_nodes(active_only=True, now=now)

        assert [node["instanceID"] for node in nodes] == ["fresh"]

    async def test_malformed_entries_skipped(self, engine, add_node, seed, keys, now):
        add_node("billing", "i1", age=1)
        seed.hset(keys.nodes, "garbage", "{not json")
        seed.hset(keys.nodes, "partial", json.dumps({"serviceName": "x"}))

        nodes = await engine.list_nodes(now=now)

        assert [node["instanceID"] for node in nodes] == ["i1"]

    async def test_empty_registry(self, engine):
        assert await engine.list_nodes() == []


class TestPruneStaleNodes:
    """Tests for stale node removal."""

    async def test_young_node_kept(self, engine, add_node, seed, keys, now):
        add_node("billing", "i1", age=30)

        assert await engine.prune_stale_nodes(60, now=now) == 0
        assert seed.hexists(keys.nodes, "i1")

    async def test_old_node_removed(self, engine, add_node, seed, keys, now):
        add_node("billing", "i1", age=30)

        assert await engine.prune_stale_nodes(20, now=now) == 1
        assert not seed.hexists(keys.nodes, "i1")

    async def test_boundary_is_strict(self, engine, add_node, now):
        add_node("billing", "i1", age=60)
        assert await engine.prune_stale_nodes(60, now=now) == 0

    async def test_only_stale_removed(self, engine, add_node, seed, keys, now):
        add_node("billing", "fresh", age=1)
        add_node("billing", "stale1", age=120)
        add_node("orders", "stale2", age=300)

        assert await engine.prune_stale_nodes(60, now=now) == 2
        assert seed.hkeys(keys.nodes) == ["fresh"]


# =============================================================================
# Services, routes and health
# =============================================================================


class TestRoutesAndServices:
    """Tests for route and service listing."""

    async def test_routes_per_service(self, engine, seed, keys):
        seed.sadd(keys.routes("billing"), "[get]/v1/invoices", "[post]/v1/charge")
        seed.sadd(keys.routes("orders"), "[get]/v1/orders")

        routes = await engine.list_routes()

        assert routes == {
            "billing": ["[get]/v1/invoices", "[post]/v1/charge"],
            "orders": ["[get]/v1/orders"],
        }

    async def test_routes_filter(self, engine, seed, keys):
        seed.sadd(keys.routes("billing"), "[get]/v1/invoices")
        seed.sadd(keys.routes("orders"), "[get]/v1/orders")

        assert list(await engine.list_routes("orders")) == ["orders"]

    async def test_no_routes(self, engine):
        assert await engine.list_routes() == {}

    async def test_services(self, engine, seed, keys):
        seed.set(keys.service("billing"), json.dumps({"serviceType": "payments", "registeredOn": "x"}))

        services = await engine.list_services()

        assert services == [{"serviceName": "billing", "serviceType": "payments", "registeredOn": "x"}]

    async def test_services_filter(self, engine, seed, keys):
        seed.set(keys.service("billing"), json.dumps({"serviceType": "payments"}))
        seed.set(keys.service("orders"), json.dumps({"serviceType": "orders"}))

        services = await engine.list_services("orders")

        assert [service["serviceName"] for service in services] == ["orders"]

    async def test_malformed_service_records_skipped(self, engine, seed, keys):
        seed.set(keys.service("billing"), json.dumps({"serviceType": "payments"}))
        seed.set(keys.service("broken"), "{not json")
        seed.set(keys.service("listed"), json.dumps(["not", "an", "object"]))

        services = await engine.list_services()

        assert [service["serviceName"] for service in services] == ["billing"]


class TestHealth:
    """Tests for health snapshots and logs."""

    async def test_snapshots_grouped_by_service(self, engine, seed, keys):
        seed.set(keys.service("billing"), json.dumps({"serviceType": "payments"}))
        seed.set(keys.service("orders"), json.dumps({"serviceType": "orders"}))
        seed.set("hydra:service:billing:i1:health", json.dumps({"serviceName": "billing", "cpu": 1}))
        seed.set("hydra:service:billing:i2:health", json.dumps({"serviceName": "billing", "cpu": 2}))

        health = await engine.get_health()

        assert len(health) == 1
        assert [snapshot["cpu"] for snapshot in health[0]] == [1, 2]

    async def test_filter_by_service(self, engine, seed, keys):
        for name in ("billing", "orders"):
            seed.set(keys.service(name), json.dumps({"serviceType": name}))
            seed.set(f"hydra:service:{name}:i1:health", json.dumps({"serviceName": name}))

        health = await engine.get_health("orders")

        assert health == [[{"serviceName": "orders"}]]

    async def test_health_log_no_keys(self, engine):
        assert await engine.get_health_log("billing") == []

    async def test_health_log_all_instances(self, engine, seed):
        seed.rpush("hydra:service:billing:i1:health:log", _health_entry("a"), _health_entry("b"))
        seed.rpush("hydra:service:billing:i2:health:log", _health_entry("c", pid=200), "not json")

        entries = await engine.get_health_log("billing")

        assert [entry["message"] for entry in entries] == ["a", "b", "c"]
        assert entries[2]["processID"] == 200

    async def test_health_log_limit(self, engine, seed):
        seed.rpush(
            "hydra:service:billing:i1:health:log",
            *[_health_entry(str(i)) for i in range(10)],
        )

        entries = await engine.get_health_log("billing", limit=3)

        assert [entry["message"] for entry in entries] == ["0", "1", "2", "3"]


# =============================================================================
# Versioned configs
# =============================================================================


class TestConfigs:
    """Tests for versioned service configs."""

    async def test_push_pull_list_remove(self, engine):
        assert await engine.push_config("billing:1.0.0", {"retries": 3}) == "billing:1.0.0"
        await engine.push_config("billing:1.0.1", {"retries": 5})

        assert await engine.pull_config("billing:1.0.1") == {"retries": 5}
        assert await engine.list_config_versions("billing") == ["billing:1.0.0", "billing:1.0.1"]

        assert await engine.remove_config_version("billing:1.0.0") is True
        assert await engine.list_config_versions("billing") == ["billing:1.0.1"]

    async def test_push_replaces(self, engine):
        await engine.push_config("billing:1.0.0", {"retries": 3})
        await engine.push_config("billing:1.0.0", {"retries": 4})
        assert await engine.pull_config("billing:1.0.0") == {"retries": 4}

    async def test_list_all(self, engine):
        await engine.push_config("orders:2", {})
        await engine.push_config("billing:1", {})

        assert await engine.list_all_config_versions() == ["billing:1", "orders:2"]

    async def test_pull_missing(self, engine):
        with pytest.raises(NotFoundError, match="billing:9.9.9"):
            await engine.pull_config("billing:9.9.9")

    async def test_pull_non_json(self, engine, seed, keys):
        seed.hset(keys.configs("billing"), "1", "{oops")
        with pytest.raises(UpstreamError):
            await engine.pull_config("billing:1")

    async def test_remove_missing_returns_false(self, engine):
        assert await engine.remove_config_version("billing:0.0.1") is False

    async def test_malformed_label_never_reaches_registry(self, keys):
        connection = MagicMock()
        engine = RegistryEngine(connection, keys)

        with pytest.raises(InvalidArgumentsError):
            await engine.remove_config_version("bad-label")

        connection.client.hdel.assert_not_called()


# =============================================================================
# Messaging
# =============================================================================


@pytest.fixture
def messenger() -> MagicMock:
    transport = MagicMock()
    transport.send = AsyncMock(return_value=1)
    transport.queue = AsyncMock(return_value=4)
    transport.request = AsyncMock(return_value={"ok": True})
    return transport


@pytest.fixture
def messaging_engine(connection, keys, messenger) -> RegistryEngine:
    return RegistryEngine(connection, keys, messenger=messenger)


class TestMessaging:
    """Tests for send, queue and REST invocation."""

    async def test_send_and_queue_delegate(self, messaging_engine, messenger):
        envelope = Envelope(to="billing:/", from_=CLI_ROUTE)

        assert await messaging_engine.send_message(envelope) == 1
        assert await messaging_engine.queue_message(envelope) == 4
        messenger.send.assert_awaited_once_with(envelope)
        messenger.queue.assert_awaited_once_with(envelope)

    async def test_send_without_transport(self, engine):
        with pytest.raises(UpstreamError):
            await engine.send_message(Envelope(to="billing:/", from_=CLI_ROUTE))

    async def test_rest_picks_freshest_instance(self, messaging_engine, messenger, add_node):
        add_node("billing", "old", age=40, ip="10.0.0.1", port=80)
        add_node("billing", "new", age=2, ip="10.0.0.2", port=80)

        result = await messaging_engine.rest_invoke("billing:[get]/v1/status")

        assert result == {"ok": True}
        envelope, node = messenger.request.await_args.args
        assert node.instance_id == "new"
        assert envelope.to == "billing:[get]/v1/status"
        assert envelope.from_ == CLI_ROUTE

    async def test_rest_with_payload(self, messaging_engine, messenger, add_node, tmp_path):
        add_node("billing", "i1", age=1, ip="10.0.0.1", port=80)
        payload = tmp_path / "charge.json"
        payload.write_text(json.dumps({"amount": 10}))

        await messaging_engine.rest_invoke("billing:[post]/v1/charge", payload)

        envelope, _ = messenger.request.await_args.args
        assert envelope.body == {"amount": 10}

    async def test_rest_get_with_payload_rejected(self, messaging_engine, messenger, tmp_path):
        with pytest.raises(InvalidArgumentsError, match="GET"):
            await messaging_engine.rest_invoke("billing:[get]/v1/status", tmp_path / "body.json")

        messenger.request.assert_not_called()

    async def test_rest_no_instance(self, messaging_engine):
        with pytest.raises(NotFoundError, match="billing"):
            await messaging_engine.rest_invoke("billing:[get]/v1/status")

    async def test_rest_specific_instance(self, messaging_engine, messenger, add_node):
        add_node("billing", "a", age=1, ip="10.0.0.1", port=80)
        add_node("billing", "b", age=9, ip="10.0.0.2", port=80)

        await messaging_engine.rest_invoke("b@billing:[get]/v1/status")

        _, node = messenger.request.await_args.args
        assert node.instance_id == "b"


class TestRestArguments:
    """Tests for REST argument validation and payload loading."""

    def test_delete_with_payload_rejected(self):
        with pytest.raises(InvalidArgumentsError, match="DELETE"):
            check_rest_arguments("billing:[delete]/v1/item", "body.json")

    def test_post_with_payload_allowed(self):
        assert check_rest_arguments("billing:[post]/v1/item", "body.json").method == "post"

    async def test_load_missing_file(self, tmp_path):
        with pytest.raises(InvalidArgumentsError, match="Unable to read"):
            await load_json_file(tmp_path / "missing.json")

    async def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        with pytest.raises(InvalidArgumentsError, match="not valid JSON"):
            await load_json_file(path)


# =============================================================================
# Administration
# =============================================================================


class TestRedisInfo:
    """Tests for server info over a secondary client."""

    async def test_info_uses_secondary(self, keys):
        admin = MagicMock()
        admin.info = AsyncMock(return_value={"redis_version": "7.2.0"})
        connection = MagicMock()
        connection.secondary.return_value.__aenter__ = AsyncMock(return_value=admin)
        connection.secondary.return_value.__aexit__ = AsyncMock(return_value=False)

        info = await RegistryEngine(connection, keys).redis_info()

        assert info == {"redis_version": "7.2.0"}
        connection.secondary.assert_called_once()


class TestConfigLifecycle:
    """End-to-end config push, pull, list and remove."""

    async def test_round_trip(self, engine):
        await engine.push_config("svcA:1", {"x": 1})

        assert await engine.pull_config("svcA:1") == {"x": 1}
        assert "svcA:1" in await engine.list_config_versions("svcA")

        assert await engine.remove_config_version("svcA:1") is True
        assert "svcA:1" not in await engine.list_config_versions("svcA")

    async def test_compact_get_with_payload_rejected(self, messaging_engine, messenger):
        with pytest.raises(InvalidArgumentsError):
            await messaging_engine.rest_invoke("svc:get@/x", "payload.json")
        messenger.request.assert_not_called()

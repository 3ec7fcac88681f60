"""
Registry Commands.

Read-mostly commands over the service registry: nodes, routes, services,
health, health logs, pruning and server info.
"""

from typing import Any, Optional

import typer

from hydra_cli.cli.dispatcher import Session, schedule

redis_app = typer.Typer(help="Redis server commands", no_args_is_help=True)


def nodes(
    ctx: typer.Context,
    service: Optional[str] = typer.Argument(None, help="Only show instances of this service"),
    active: bool = typer.Option(
        False, "--active", "-a", help="Only show instances that reported recently",
    ),
) -> None:
    """
    Display service instance nodes.

    Each entry carries `elapsed`, the seconds since the instance last
    reported in.

    Examples:
        hydra-cli nodes
        hydra-cli nodes billing-service --active
    """
    schedule(ctx, "nodes", _nodes, service, active)


def routes(
    ctx: typer.Context,
    service: Optional[str] = typer.Argument(None, help="Only show routes of this service"),
) -> None:
    """Display service API routes."""
    schedule(ctx, "routes", _routes, service)


def services(
    ctx: typer.Context,
    service: Optional[str] = typer.Argument(None, help="Only show this service"),
) -> None:
    """Display registered services."""
    schedule(ctx, "services", _services, service)


def health(
    ctx: typer.Context,
    service: Optional[str] = typer.Argument(None, help="Only show health of this service"),
) -> None:
    """Display service health snapshots."""
    schedule(ctx, "health", _health, service)


def healthlog(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service whose health logs to show"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", min=1, help="Entries to read per instance",
    ),
) -> None:
    """Display the health logs of every instance of a service."""
    schedule(ctx, "healthlog", _healthlog, service, limit)


def refresh(ctx: typer.Context) -> None:
    """
    Remove stale nodes from the registry.

    A node is stale when it has not reported within the configured
    stale threshold.
    """
    schedule(ctx, "refresh", _refresh)


@redis_app.command()
def info(ctx: typer.Context) -> None:
    """Display Redis server information."""
    schedule(ctx, "redis info", _redis_info)


async def _nodes(session: Session, service: str | None, active: bool) -> Any:
    return await session.engine().list_nodes(service, active_only=active)


async def _routes(session: Session, service: str | None) -> Any:
    return await session.engine().list_routes(service)


async def _services(session: Session, service: str | None) -> Any:
    return await session.engine().list_services(service)


async def _health(session: Session, service: str | None) -> Any:
    return await session.engine().get_health(service)


async def _healthlog(session: Session, service: str, limit: int | None) -> Any:
    limit = limit or session.application.registry.health_log_limit
    return await session.engine().get_health_log(service, limit=limit)


async def _refresh(session: Session) -> str:
    threshold = session.application.registry.stale_threshold
    removed = await session.engine().prune_stale_nodes(threshold)
    return f"Removed {removed} stale node(s) older than {threshold}s"


async def _redis_info(session: Session) -> Any:
    return await session.engine().redis_info()

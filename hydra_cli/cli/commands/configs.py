"""
Config Commands.

Versioned service configuration stored in the registry under
`serviceName:version` labels.
"""

from typing import Any, Optional

import typer

from hydra_cli.cli.dispatcher import Session, schedule
from hydra_cli.core.exceptions import NotFoundError
from hydra_cli.registry.engine import load_json_file
from hydra_cli.registry.models import ConfigLabel

app = typer.Typer(help="Versioned service configuration", no_args_is_help=True)


@app.command()
def push(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="serviceName:version"),
    file: str = typer.Argument(..., help="JSON file to store"),
) -> None:
    """
    Store a config version from a JSON file.

    Examples:
        hydra-cli cfg push billing-service:1.0.2 ./config.json
    """
    schedule(ctx, "cfg push", _push, label, file, precheck=lambda: ConfigLabel.parse(label))


@app.command()
def pull(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="serviceName:version"),
) -> None:
    """Print a stored config version."""
    schedule(ctx, "cfg pull", _pull, label, precheck=lambda: ConfigLabel.parse(label))


@app.command("list")
def list_(
    ctx: typer.Context,
    service: Optional[str] = typer.Argument(None, help="Only list versions of this service"),
) -> None:
    """List stored config versions."""
    schedule(ctx, "cfg list", _list, service)


@app.command()
def remove(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="serviceName:version"),
) -> None:
    """Remove a stored config version."""
    schedule(ctx, "cfg remove", _remove, label, precheck=lambda: ConfigLabel.parse(label))


async def _push(session: Session, label: str, file: str) -> str:
    engine = session.engine()
    payload = await load_json_file(file)
    stored = await engine.push_config(label, payload)
    return f"Pushed {stored}"


async def _pull(session: Session, label: str) -> Any:
    return await session.engine().pull_config(label)


async def _list(session: Session, service: str | None) -> Any:
    engine = session.engine()
    if service:
        return await engine.list_config_versions(service)
    return await engine.list_all_config_versions()


async def _remove(session: Session, label: str) -> str:
    if not await session.engine().remove_config_version(label):
        raise NotFoundError(f"Config {label} not found")
    return f"Removed {label}"

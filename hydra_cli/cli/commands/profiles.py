"""
Profile Commands.

`config <name>` creates or updates a connection profile, `config list`
shows stored profiles and `use <name>` switches the active one. These are
the only commands that run without a stored profile.
"""

from typing import Any, Optional

import typer
from pydantic import ValidationError

from hydra_cli.cli.dispatcher import Session, schedule
from hydra_cli.core.exceptions import InvalidArgumentsError, NotFoundError
from hydra_cli.profiles.models import Profile

LIST_KEYWORD = "list"


def config(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Profile name, or 'list' to show stored profiles"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Redis host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Redis port"),
    db: Optional[int] = typer.Option(None, "--db", "-n", help="Redis database index"),
    password: Optional[str] = typer.Option(None, "--password", help="Redis password"),
) -> None:
    """
    Configure a connection profile.

    Missing fields are prompted for. The first profile becomes active.

    Examples:
        hydra-cli config local --url 127.0.0.1 --port 6379 --db 15
        hydra-cli config list
    """
    if name == LIST_KEYWORD:
        schedule(ctx, "config list", _list_profiles, requires_state=False, requires_registry=False)
        return

    fields = {
        "redisUrl": url if url is not None else typer.prompt("Redis host", default="127.0.0.1"),
        "redisPort": port if port is not None else typer.prompt("Redis port", default=6379, type=int),
        "redisDb": db if db is not None else typer.prompt("Redis db", default=0, type=int),
        "redisPassword": password if password is not None else typer.prompt(
            "Redis password", default="", hide_input=True, show_default=False,
        ),
    }
    schedule(ctx, "config", _save_profile, name, fields, requires_state=False, requires_registry=False)


def use(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Profile to make active"),
) -> None:
    """
    Switch the active connection profile.

    Examples:
        hydra-cli use staging
    """
    schedule(ctx, "use", _use_profile, name, requires_state=False, requires_registry=False)


async def _list_profiles(session: Session) -> Any:
    if session.state is None:
        return []
    active = session.state.active_profile
    return [
        {**profile.model_dump(by_alias=True, exclude={"password"}), "active": name == active}
        for name, profile in session.state.profiles.items()
    ]


async def _save_profile(session: Session, name: str, fields: dict[str, Any]) -> str:
    if not fields.get("redisPassword"):
        fields = {**fields, "redisPassword": None}
    try:
        profile = Profile.model_validate({**fields, "name": name})
    except ValidationError as e:
        raise InvalidArgumentsError(f"Invalid profile '{name}': {e}") from e

    session.state = await session.store.set_profile(session.state, name, profile)
    is_active = session.state.active_profile == name
    if is_active and session.connection is not None:
        # The open connection was made with the old fields.
        await session.close()
    suffix = " (active)" if is_active else ""
    return f"Profile '{name}' saved{suffix}: {profile.describe()}"


async def _use_profile(session: Session, name: str) -> str:
    if session.state is None:
        raise NotFoundError(f"Profile '{name}' not found")
    if session.connection is not None:
        await session.close()
    session.state = await session.store.switch_active(session.state, name)
    return f"Using profile '{name}'"

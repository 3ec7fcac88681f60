"""
hydra-cli.

Command line interface for Hydra services.
Built with Typer for type-safe commands and Rich for formatted output.

Usage:
    hydra-cli config local --url 127.0.0.1 --port 6379 --db 15
    hydra-cli config list                 # Show stored profiles
    hydra-cli use staging                 # Switch the active profile

    hydra-cli nodes [service] [--active]  # Service instance nodes
    hydra-cli routes [service]            # Service API routes
    hydra-cli services [service]          # Registered services
    hydra-cli health [service]            # Health snapshots
    hydra-cli healthlog <service>         # Health logs
    hydra-cli refresh                     # Remove stale nodes

    hydra-cli cfg push <label> <file>     # Versioned configs
    hydra-cli cfg pull <label>
    hydra-cli cfg list [service]
    hydra-cli cfg remove <label>

    hydra-cli message create|send <file>|queue <file>
    hydra-cli rest <route> [payload]
    hydra-cli redis info
    hydra-cli shell                       # Interactive mode

Every invocation, including failures and unknown commands, ends with the
same shutdown sequence and exit code 0.
"""

import asyncio
import sys

import click
import typer

from hydra_cli.cli.commands import cfg_app, message_app, redis_app
from hydra_cli.cli.commands import messages, profiles, registry
from hydra_cli.cli.dispatcher import Session, build_session, execute, report, schedule, shutdown
from hydra_cli.cli.output import console, render, render_error, render_warning
from hydra_cli.cli.shell import run_shell
from hydra_cli.core.config import get_shutdown_grace
from hydra_cli.core.logging import get_logger, setup_logging
from hydra_cli.registry.connection import ClientFactory

logger = get_logger(__name__)

app = typer.Typer(
    name="hydra-cli",
    help="A command line interface for Hydra services.",
    rich_markup_mode="rich",
    add_completion=False,
)

app.add_typer(cfg_app, name="cfg")
app.add_typer(message_app, name="message")
app.add_typer(redis_app, name="redis")

app.command()(profiles.config)
app.command()(profiles.use)
app.command()(registry.nodes)
app.command()(registry.routes)
app.command()(registry.services)
app.command()(registry.health)
app.command()(registry.healthlog)
app.command()(registry.refresh)
app.command()(messages.rest)


@app.command()
def shell(ctx: typer.Context) -> None:
    """
    Start interactive shell mode.

    Provides a REPL-style interface for running commands interactively.
    """
    schedule(ctx, "shell", run_shell, requires_registry=False)


@app.command("help")
def help_(ctx: typer.Context) -> None:
    """Show available commands."""
    text = ctx.parent.get_help() if ctx.parent is not None else ""
    schedule(ctx, "help", _show, text or None, requires_state=False, requires_registry=False)


async def _show(session: Session, text: str | None) -> str | None:
    return text


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (INFO level logging)",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug mode (DEBUG level logging)",
    ),
) -> None:
    """
    A command line interface for Hydra services.

    Inspect nodes, routes and health, manage versioned configs and
    connection profiles, and send messages to services.
    """
    if debug:
        setup_logging(level="DEBUG", format_type="console")
        console.print("[dim]Debug mode enabled[/dim]")
    elif verbose:
        setup_logging(level="INFO", format_type="console")


def parse(session: Session, argv: list[str]) -> bool:
    """
    Parse one command line into `session.pending`.

    Usage errors are printed here and leave nothing pending.

    Returns:
        False when the command line could not be parsed
    """
    session.pending = None
    try:
        app(args=argv, prog_name="hydra-cli", standalone_mode=False, obj=session)
    except click.exceptions.Abort:
        render_warning("Aborted")
        return False
    except click.exceptions.NoArgsIsHelpError as e:
        render(e.format_message())
        return False
    except click.ClickException as e:
        message = e.format_message()
        if message:
            render_error(message)
        return False
    return True


async def drive(session: Session, argv: list[str], grace: float) -> None:
    """Parse, execute and report one command, then shut down."""
    try:
        await session.load()
        if parse(session, argv) and session.pending is not None:
            outcome = await execute(session, session.pending)
            report(outcome)
    finally:
        await shutdown(session, grace)


def main(argv: list[str] | None = None, client_factory: ClientFactory | None = None) -> int:
    """
    Run one hydra-cli invocation.

    Args:
        argv: Arguments after the program name; defaults to sys.argv[1:]
        client_factory: Redis client factory, used by tests

    Returns:
        Process exit code, always 0; failures are reported as text
    """
    args = list(sys.argv[1:] if argv is None else argv) or ["help"]

    try:
        setup_logging()
        session = build_session(client_factory)
        grace = get_shutdown_grace()
    except (FileNotFoundError, ValueError) as e:
        render_error(f"Unable to load hydra-cli settings: {e}")
        return 0

    asyncio.run(drive(session, args, grace))
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()

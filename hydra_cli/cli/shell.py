"""
Interactive Shell Mode.

Provides a REPL-style interactive shell over the regular command set.
Lines are parsed by the same typer application and executed through the
same dispatcher, reusing one registry connection for the whole session.
"""

import shlex
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hydra_cli.cli.dispatcher import Session, execute, report
from hydra_cli.core.logging import get_logger, log_with_source

console = Console()
logger = get_logger(__name__)


class InteractiveShell:
    """
    Interactive shell for hydra-cli commands.

    Built-in commands (help, clear, quit, exit) are handled locally;
    everything else is dispatched as if typed after `hydra-cli`.

    Usage:
        shell = InteractiveShell(session)
        await shell.run()
    """

    def __init__(self, session: Session) -> None:
        """Initialize the interactive shell."""
        self.session = session
        self.running = False
        self.commands: dict[str, Callable] = {
            "help": self._cmd_help,
            "clear": self._cmd_clear,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
        }

    async def run(self) -> None:
        """Run the interactive shell until quit, EOF or a fatal error."""
        from hydra_cli.main import parse

        self.running = True
        active = self.session.state.active_profile if self.session.state else None

        console.print(Panel(
            "[bold]hydra-cli shell[/bold]\n"
            f"Profile: [cyan]{active or 'default'}[/cyan]\n"
            "Type [cyan]help[/cyan] for available commands, [cyan]quit[/cyan] to exit.",
            title="Welcome",
        ))

        while self.running:
            try:
                user_input = console.input("[bold cyan]hydra>[/bold cyan] ").strip()
            except KeyboardInterrupt:
                console.print("\n[dim]Use 'quit' to exit[/dim]")
                continue
            except EOFError:
                break

            if not user_input:
                continue

            try:
                parts = shlex.split(user_input)
            except ValueError as e:
                console.print(f"[red]Error: {e}[/red]")
                continue

            command = parts[0].lower()
            if command in self.commands:
                await self.commands[command](parts[1:])
                continue

            if not parse(self.session, parts) or self.session.pending is None:
                continue

            invocation = self.session.pending
            self.session.pending = None
            if invocation.name == "shell":
                console.print("[dim]Already in the shell[/dim]")
                continue

            log_with_source(logger, "shell", "debug", "Shell command", command=invocation.name)
            outcome = await execute(self.session, invocation)
            report(outcome)
            if outcome.fatal:
                self.running = False

        console.print("[dim]Goodbye![/dim]")

    async def _cmd_help(self, args: list[str]) -> None:
        """Display help information."""
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Description")

        table.add_row("nodes [service] [--active]", "Service instance nodes")
        table.add_row("routes [service]", "Service API routes")
        table.add_row("services [service]", "Registered services")
        table.add_row("health [service]", "Health snapshots")
        table.add_row("healthlog <service>", "Health logs of every instance")
        table.add_row("refresh", "Remove stale nodes")
        table.add_row("cfg push|pull|list|remove", "Versioned service configs")
        table.add_row("message create|send|queue", "Inter-service messages")
        table.add_row("rest <route> [payload]", "Call a service route")
        table.add_row("redis info", "Redis server information")
        table.add_row("config <name> | config list", "Manage connection profiles")
        table.add_row("use <name>", "Switch the active profile")
        table.add_row("clear", "Clear the screen")
        table.add_row("quit / exit", "Exit the shell")

        console.print(table)

    async def _cmd_clear(self, args: list[str]) -> None:
        """Clear the screen."""
        console.clear()

    async def _cmd_quit(self, args: list[str]) -> None:
        """Exit the shell."""
        self.running = False


async def run_shell(session: Session) -> None:
    """Run the interactive shell."""
    shell = InteractiveShell(session)
    await shell.run()

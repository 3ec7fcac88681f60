"""
Command Dispatcher.

Parsing a command line records one Invocation on the Session; execute()
then enforces preconditions, opens the registry connection when needed,
runs the handler and converts every error into an Outcome. shutdown() is
the one shared exit sequence.

The Session is the only carrier of per-invocation state. It is passed to
typer as the click context object and from there to every handler.

Usage:
    session = build_session()
    await session.load()
    session.schedule(Invocation("nodes", handler, ("billing",)))
    outcome = await execute(session, session.pending)
    report(outcome)
    await shutdown(session, grace=0.5)
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import typer
from redis.exceptions import RedisError

from hydra_cli.cli.output import render, render_error, render_warning
from hydra_cli.core.config import get_app_config, get_state_path
from hydra_cli.core.config_schema import ApplicationSchema
from hydra_cli.core.exceptions import ConfigAbsentError, HydraCliError, UpstreamError
from hydra_cli.core.logging import get_logger, log_with_source
from hydra_cli.profiles.models import ProfileState
from hydra_cli.profiles.store import ProfileStore
from hydra_cli.registry.connection import ClientFactory, RegistryConnection
from hydra_cli.registry.engine import RegistryEngine
from hydra_cli.registry.keys import RegistryKeys
from hydra_cli.registry.messaging import HydraMessenger

logger = get_logger(__name__)

Handler = Callable[..., Awaitable[Any]]


@dataclass
class Invocation:
    """One parsed command, ready to execute."""

    name: str
    handler: Handler
    args: tuple[Any, ...] = ()
    requires_state: bool = True
    requires_registry: bool = True
    precheck: Callable[[], Any] | None = None


@dataclass
class Outcome:
    """Result of executing one Invocation."""

    ok: bool
    value: Any = None
    message: str | None = None
    level: str = "error"
    code: str | None = None
    fatal: bool = False


@dataclass
class Session:
    """
    Everything one invocation owns.

    The profile store and state, the registry connection and the message
    transport are opened lazily and released by close().
    """

    store: ProfileStore
    application: ApplicationSchema
    keys: RegistryKeys
    client_factory: ClientFactory | None = None
    state: ProfileState | None = None
    connection: RegistryConnection | None = None
    messenger: HydraMessenger | None = None
    pending: Invocation | None = None
    _connect_error: HydraCliError | None = field(default=None, repr=False)

    async def load(self) -> ProfileState | None:
        """Load the persisted profile state."""
        self.state = await self.store.load()
        return self.state

    def schedule(self, invocation: Invocation) -> None:
        """Record the command to execute."""
        self.pending = invocation

    async def connect(self) -> RegistryConnection:
        """
        Open the registry connection using the active profile.

        A failed attempt is terminal: later calls re-raise the same error.

        Raises:
            ConfigAbsentError: If no profile has connection fields
            ConnectionTimeoutError, RegistryConnectionError: From the handshake
        """
        if self._connect_error is not None:
            raise self._connect_error
        if self.connection is not None:
            return self.connection

        profile = self.state.active() if self.state is not None else None
        if profile is None:
            raise ConfigAbsentError()

        connection = RegistryConnection(
            profile,
            timeout=self.application.registry.connect_timeout,
            client_factory=self.client_factory,
        )
        try:
            await connection.open()
        except HydraCliError as e:
            self._connect_error = e
            raise
        self.connection = connection
        return connection

    def engine(self) -> RegistryEngine:
        """Engine bound to the open connection."""
        if self.connection is None:
            raise ConfigAbsentError()
        if self.messenger is None:
            self.messenger = HydraMessenger(
                self.connection,
                self.keys,
                timeout=self.application.http.request_timeout,
            )
        return RegistryEngine(
            self.connection,
            self.keys,
            messenger=self.messenger,
            active_threshold=self.application.registry.active_threshold,
        )

    async def close(self) -> None:
        """Release the transport and the connection. Idempotent."""
        if self.messenger is not None:
            await self.messenger.close()
            self.messenger = None
        if self.connection is not None:
            await self.connection.close()
            self.connection = None


def build_session(client_factory: ClientFactory | None = None) -> Session:
    """Create a session from configuration."""
    return Session(
        store=ProfileStore(get_state_path()),
        application=get_app_config().application,
        keys=RegistryKeys.from_config(),
        client_factory=client_factory,
    )


def schedule(
    ctx: typer.Context,
    name: str,
    handler: Handler,
    *args: Any,
    requires_state: bool = True,
    requires_registry: bool = True,
    precheck: Callable[[], Any] | None = None,
) -> None:
    """
    Record an invocation on the session carried by the typer context.

    `precheck` runs before the registry is contacted; it validates argument
    shapes so that malformed input never opens a connection.
    """
    session: Session = ctx.obj
    session.schedule(Invocation(
        name=name,
        handler=handler,
        args=args,
        requires_state=requires_state,
        requires_registry=requires_registry,
        precheck=precheck,
    ))


async def execute(session: Session, invocation: Invocation) -> Outcome:
    """
    Run one invocation and capture its result.

    Never raises: every failure becomes an Outcome with a readable message.
    """
    log_with_source(logger, "cli", "debug", "Executing command", command=invocation.name)

    if invocation.requires_state and session.state is None:
        return Outcome(ok=False, message=ConfigAbsentError().message, level="warning", code="CFG_ABSENT")

    try:
        if invocation.precheck is not None:
            invocation.precheck()
        if invocation.requires_registry:
            await session.connect()
        value = await invocation.handler(session, *invocation.args)
    except HydraCliError as e:
        log_with_source(
            logger, "cli", "info", "Command failed",
            command=invocation.name, code=e.code, error=e.message,
        )
        return Outcome(ok=False, message=e.message, code=e.code, fatal=e.fatal)
    except RedisError as e:
        error = UpstreamError(f"Registry error: {e}")
        log_with_source(logger, "cli", "warning", "Registry error", command=invocation.name, error=str(e))
        return Outcome(ok=False, message=error.message, code=error.code)
    except httpx.HTTPError as e:
        error = UpstreamError(f"Transport error: {e}")
        log_with_source(logger, "cli", "warning", "Transport error", command=invocation.name, error=str(e))
        return Outcome(ok=False, message=error.message, code=error.code)
    except Exception as e:
        logger.exception("Unexpected error", command=invocation.name)
        return Outcome(ok=False, message=f"Unexpected error: {e}", code="SYS_INTERNAL_ERROR")

    log_with_source(logger, "cli", "debug", "Command finished", command=invocation.name)
    return Outcome(ok=True, value=value)


def report(outcome: Outcome) -> None:
    """Print an outcome."""
    if outcome.ok:
        render(outcome.value)
    elif outcome.level == "warning":
        render_warning(outcome.message or "")
    else:
        render_error(outcome.message or "")


async def shutdown(session: Session, grace: float) -> None:
    """
    Close every open connection, then wait out the grace period.

    The grace period lets writes the libraries issue while disconnecting
    reach the server before the process exits.
    """
    await session.close()
    log_with_source(logger, "cli", "debug", "Shutdown", grace=grace)
    if grace > 0:
        await asyncio.sleep(grace)

"""
Message Commands.

Build, send and queue message envelopes, and call service routes over
REST through a registered instance.
"""

from typing import Any, Optional

import typer
from pydantic import ValidationError

from hydra_cli.cli.dispatcher import Session, schedule
from hydra_cli.core.exceptions import InvalidArgumentsError
from hydra_cli.registry.engine import CLI_ROUTE, check_rest_arguments, load_json_file
from hydra_cli.registry.models import Envelope

app = typer.Typer(help="Inter-service messages", no_args_is_help=True)


@app.command()
def create(ctx: typer.Context) -> None:
    """
    Print a message envelope template.

    Examples:
        hydra-cli message create > message.json
    """
    schedule(ctx, "message create", _create, requires_registry=False)


@app.command()
def send(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="JSON file holding the envelope"),
) -> None:
    """Send a message envelope for immediate delivery."""
    schedule(ctx, "message send", _send, file)


@app.command()
def queue(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="JSON file holding the envelope"),
) -> None:
    """Queue a message envelope for durable delivery."""
    schedule(ctx, "message queue", _queue, file)


def rest(
    ctx: typer.Context,
    route: str = typer.Argument(..., help="service:[method]/path"),
    payload: Optional[str] = typer.Argument(None, help="JSON file to send as the body"),
) -> None:
    """
    Call a service API route.

    GET and DELETE requests do not accept a payload.

    Examples:
        hydra-cli rest billing-service:[get]/v1/billing/health
        hydra-cli rest billing-service:[post]/v1/billing/invoice ./invoice.json
    """
    schedule(ctx, "rest", _rest, route, payload, precheck=lambda: check_rest_arguments(route, payload))


async def _create(session: Session) -> Any:
    return Envelope(to="hydra-router:/", from_=CLI_ROUTE, body={}).to_wire()


async def _load_envelope(file: str) -> Envelope:
    document = await load_json_file(file)
    try:
        envelope = Envelope.model_validate(document)
        envelope.route()
    except ValidationError as e:
        raise InvalidArgumentsError(f"{file} is not a valid message envelope: {e}") from e
    return envelope


async def _send(session: Session, file: str) -> str:
    engine = session.engine()
    envelope = await _load_envelope(file)
    receivers = await engine.send_message(envelope)
    return f"Message {envelope.mid} sent to {envelope.to} ({receivers} receiver(s))"


async def _queue(session: Session, file: str) -> str:
    engine = session.engine()
    envelope = await _load_envelope(file)
    await engine.queue_message(envelope)
    return f"Message {envelope.mid} queued for {envelope.to}"


async def _rest(session: Session, route: str, payload: str | None) -> Any:
    return await session.engine().rest_invoke(route, payload)

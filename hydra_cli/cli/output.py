"""
Output Formatter.

Renders command results to stdout: strings pass through untouched,
everything else is printed as indented JSON.
"""

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.markup import escape

console = Console()


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True, mode="json")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def format_output(value: Any) -> str | None:
    """
    Turn a command result into printable text.

    Returns:
        None when there is nothing to print
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=_default)


def render(value: Any) -> None:
    """Print a command result."""
    text = format_output(value)
    if text is not None:
        console.print(text, markup=False, highlight=False, soft_wrap=True)


def render_error(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]", soft_wrap=True)


def render_warning(message: str) -> None:
    console.print(f"[yellow]{escape(message)}[/yellow]", soft_wrap=True)

"""
CLI Commands.

Organized by domain/feature area.
"""

from hydra_cli.cli.commands.configs import app as cfg_app
from hydra_cli.cli.commands.messages import app as message_app
from hydra_cli.cli.commands.registry import redis_app

__all__ = [
    "cfg_app",
    "message_app",
    "redis_app",
]

"""
hydra-cli.

Command line interface for inspecting and managing a Hydra service
registry backed by Redis.
"""

__version__ = "1.0.0"

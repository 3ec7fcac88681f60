"""Allow `python -m hydra_cli`."""

from hydra_cli.main import run

run()

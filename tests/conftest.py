"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Every test runs against an isolated profile state file under tmp_path and
with a zero shutdown grace period, so nothing touches the operator's real
~/.hydra-cli and no test sleeps.
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from hydra_cli.core.config import get_app_config, get_settings


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point hydra-cli at a throwaway state file and clear cached settings."""
    state_file = tmp_path / ".hydra-cli"
    monkeypatch.setenv("HYDRA_CLI_STATE_FILE", str(state_file))
    monkeypatch.setenv("HYDRA_CLI_SHUTDOWN_GRACE", "0")
    monkeypatch.delenv("HYDRA_CLI_SETTINGS_DIR", raising=False)
    monkeypatch.delenv("HYDRA_CLI_LOG_LEVEL", raising=False)
    get_settings.cache_clear()
    get_app_config.cache_clear()
    yield state_file
    get_settings.cache_clear()
    get_app_config.cache_clear()


@pytest.fixture
def state_file(isolated_environment: Path) -> Path:
    """Path of the isolated profile state file."""
    return isolated_environment

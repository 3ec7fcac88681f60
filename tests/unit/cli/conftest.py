"""
CLI Test Fixtures.

Sessions wired to the isolated state file and the fake registry.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest

from hydra_cli.cli.dispatcher import Session
from hydra_cli.core.config import get_app_config
from hydra_cli.profiles.models import Profile
from hydra_cli.profiles.store import ProfileStore
from hydra_cli.registry.keys import RegistryKeys


@pytest.fixture
async def configured(state_file: Path, profile: Profile) -> Path:
    """Persist one active profile before the test runs."""
    await ProfileStore(state_file).set_profile(None, profile.name, profile)
    return state_file


@pytest.fixture
def make_session(state_file: Path) -> Callable[..., Session]:
    def _make(client_factory: Callable[..., Any] | None = None) -> Session:
        return Session(
            store=ProfileStore(state_file),
            application=get_app_config().application,
            keys=RegistryKeys(),
            client_factory=client_factory,
        )

    return _make


@pytest.fixture
async def session(
    configured: Path,
    make_session: Callable[..., Session],
    redis_factory: Callable[..., Any],
) -> AsyncGenerator[Session, None]:
    """A loaded session with an active profile, talking to the fake registry."""
    current = make_session(redis_factory)
    await current.load()
    yield current
    await current.close()

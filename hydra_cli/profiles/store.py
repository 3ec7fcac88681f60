"""
Profile Store.

Persists named connection profiles in a single JSON state file and tracks
which profile is active. The store is owned by one invocation; every
mutation is written immediately and atomically.

Usage:
    from hydra_cli.profiles.store import ProfileStore

    store = ProfileStore(get_state_path())
    state = await store.load()            # None when absent or corrupt
    state = await store.set_profile(state, "local", profile)
    state = await store.switch_active(state, "local")
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path

from hydra_cli.core.exceptions import (
    ConfigCorruptError,
    InvalidArgumentsError,
    NotFoundError,
    ProfileStoreError,
)
from hydra_cli.core.logging import get_logger, log_with_source
from hydra_cli.profiles.models import RESERVED_KEYS, Profile, ProfileState

logger = get_logger(__name__)


class ProfileStore:
    """File-backed store for connection profiles."""

    def __init__(self, path: Path) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the state file; need not exist yet
        """
        self.path = path

    async def load(self) -> ProfileState | None:
        """
        Read the persisted state.

        A missing file means hydra-cli was never configured. An unreadable
        or malformed file is treated the same way so that profile commands
        can still rewrite it.

        Returns:
            ProfileState, or None when the state is absent or corrupt
        """
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            log_with_source(logger, "profiles", "debug", "No profile state", path=str(self.path))
            return None
        except OSError as e:
            log_with_source(
                logger, "profiles", "warning", "Profile state unreadable",
                path=str(self.path), error=str(e),
            )
            return None

        try:
            return ProfileState.from_document(json.loads(raw))
        except (json.JSONDecodeError, ConfigCorruptError) as e:
            log_with_source(
                logger, "profiles", "warning", "Profile state corrupt, ignoring",
                path=str(self.path), error=str(e),
            )
            return None

    async def save(self, state: ProfileState) -> None:
        """
        Write the entire state as one document.

        Raises:
            ProfileStoreError: If the file cannot be written
        """
        payload = json.dumps(state.to_document(), indent=2)
        try:
            await asyncio.to_thread(self._write_atomic, payload)
        except OSError as e:
            raise ProfileStoreError(f"Unable to write {self.path}: {e}") from e
        log_with_source(logger, "profiles", "debug", "Profile state saved", path=str(self.path))

    def _write_atomic(self, payload: str) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def list_profiles(self, state: ProfileState) -> list[str]:
        """Names of all stored profiles, in stored order."""
        return list(state.profiles)

    async def switch_active(self, state: ProfileState, name: str) -> ProfileState:
        """
        Make a stored profile the active one and persist.

        Raises:
            NotFoundError: If no profile is stored under `name`
        """
        if name not in state.profiles:
            raise NotFoundError(f"Profile '{name}' not found")

        updated = state.model_copy(deep=True)
        updated.mirror(updated.profiles[name])
        await self.save(updated)
        log_with_source(logger, "profiles", "info", "Active profile switched", profile=name)
        return updated

    async def set_profile(
        self,
        state: ProfileState | None,
        name: str,
        profile: Profile,
    ) -> ProfileState:
        """
        Insert or overwrite a profile and persist.

        Other profiles are preserved. The top-level active fields change only
        when `name` is the active profile, or when no connection fields have
        been stored yet (the first profile becomes active).

        Raises:
            InvalidArgumentsError: If `name` collides with a reserved state key
        """
        if name in RESERVED_KEYS:
            raise InvalidArgumentsError(f"'{name}' is reserved and cannot be used as a profile name")

        updated = state.model_copy(deep=True) if state is not None else ProfileState()
        stored = profile.model_copy(update={"name": name})
        updated.extras.pop(name, None)
        updated.profiles[name] = stored

        if updated.active_profile == name or (updated.active_profile is None and not updated.url):
            updated.mirror(stored)

        await self.save(updated)
        log_with_source(logger, "profiles", "info", "Profile saved", profile=name)
        return updated

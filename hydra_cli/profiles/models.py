"""
Profile Schemas.

Pydantic models for connection profiles and the persisted state document.

Persisted document (JSON, one file):

    {
        "version": 2,
        "activeProfile": "local",
        "redisUrl": "127.0.0.1", "redisPort": 6379, "redisDb": 15,
        "local": {"name": "local", "redisUrl": "127.0.0.1", "redisPort": 6379, "redisDb": 15},
        "staging": {...}
    }

The active profile's fields are mirrored at the top level so that state
written by older releases (top-level fields only) still connects.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hydra_cli.core.exceptions import ConfigCorruptError
from hydra_cli.core.logging import get_logger

logger = get_logger(__name__)

STATE_VERSION = 2

CONNECTION_KEYS = ("redisUrl", "redisPort", "redisDb", "redisPassword")

RESERVED_KEYS = frozenset({"version", "activeProfile", *CONNECTION_KEYS})


class Profile(BaseModel):
    """A named set of registry connection parameters."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    url: str = Field(alias="redisUrl", min_length=1)
    port: int = Field(default=6379, alias="redisPort", ge=1, le=65535)
    db: int = Field(default=0, alias="redisDb", ge=0)
    password: str | None = Field(default=None, alias="redisPassword")

    def to_document(self) -> dict[str, Any]:
        """Serialize with the persisted field names, omitting an empty password."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def connection_fields(self) -> dict[str, Any]:
        """The fields mirrored at the top level of the state document."""
        return self.model_dump(by_alias=True, exclude={"name"}, exclude_none=True)

    def describe(self) -> str:
        """Human-readable address, never including the password."""
        return f"{self.url}:{self.port}/{self.db}"


class _ActiveFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str | None = Field(default=None, alias="redisUrl")
    port: int | None = Field(default=None, alias="redisPort")
    db: int | None = Field(default=None, alias="redisDb")
    password: str | None = Field(default=None, alias="redisPassword")


class ProfileState(BaseModel):
    """
    In-memory form of the persisted state document.

    Top-level connection fields describe the active profile. `extras` keeps
    unknown keys, including objects without a `redisUrl`, so that load/save
    never drops data it does not own.
    """

    version: int = STATE_VERSION
    active_profile: str | None = None
    url: str | None = None
    port: int | None = None
    db: int | None = None
    password: str | None = None
    profiles: dict[str, Profile] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Any) -> "ProfileState":
        """
        Build state from a decoded JSON document.

        An absent or different `version` is read as the current schema.

        Raises:
            ConfigCorruptError: If the document or any profile has the wrong shape
        """
        if not isinstance(document, dict):
            raise ConfigCorruptError("Profile state must be a JSON object")

        version = document.get("version")
        if version != STATE_VERSION:
            logger.debug(
                "Reading profile state as current schema",
                found_version=version,
                current_version=STATE_VERSION,
            )

        try:
            active = _ActiveFields.model_validate(
                {key: document[key] for key in CONNECTION_KEYS if key in document}
            )
        except ValidationError as e:
            raise ConfigCorruptError(f"Invalid active profile fields: {e}") from e

        profiles: dict[str, Profile] = {}
        extras: dict[str, Any] = {}
        for key, value in document.items():
            if key in RESERVED_KEYS:
                continue
            # A profile is an object carrying redisUrl; other values are not ours.
            if not isinstance(value, dict) or "redisUrl" not in value:
                extras[key] = value
                continue
            try:
                profiles[key] = Profile.model_validate({**value, "name": key})
            except ValidationError as e:
                raise ConfigCorruptError(f"Invalid profile '{key}': {e}") from e

        active_profile = document.get("activeProfile")
        if not isinstance(active_profile, str) or active_profile not in profiles:
            active_profile = _infer_active(active, profiles)

        return cls(
            active_profile=active_profile,
            url=active.url,
            port=active.port,
            db=active.db,
            password=active.password,
            profiles=profiles,
            extras=extras,
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted JSON layout."""
        document: dict[str, Any] = {"version": self.version}
        if self.active_profile is not None:
            document["activeProfile"] = self.active_profile
        for key, value in (
            ("redisUrl", self.url),
            ("redisPort", self.port),
            ("redisDb", self.db),
            ("redisPassword", self.password),
        ):
            if value is not None:
                document[key] = value
        document.update(self.extras)
        for name, profile in self.profiles.items():
            document[name] = profile.to_document()
        return document

    def mirror(self, profile: Profile) -> None:
        """Copy a profile's fields over the top-level active fields."""
        self.active_profile = profile.name
        self.url = profile.url
        self.port = profile.port
        self.db = profile.db
        self.password = profile.password

    def active(self) -> Profile | None:
        """
        The profile to connect with, built from the top-level fields.

        Returns None when no connection fields have been stored yet.
        """
        if not self.url:
            return None
        return Profile(
            name=self.active_profile or "default",
            url=self.url,
            port=self.port or 6379,
            db=self.db or 0,
            password=self.password,
        )


def _infer_active(active: _ActiveFields, profiles: dict[str, Profile]) -> str | None:
    for name, profile in profiles.items():
        if (profile.url, profile.port, profile.db, profile.password) == (
            active.url, active.port, active.db, active.password,
        ):
            return name
    return None

"""
Configuration Management.

Loads settings from hydra_cli/settings/*.yaml and environment overrides
from HYDRA_CLI_* variables. Connection profiles are not configuration:
they live in the profile state file managed by hydra_cli.profiles.

Environment (HYDRA_CLI_*):
    STATE_FILE      - Path of the profile state file (default ~/.hydra-cli)
    SETTINGS_DIR    - Directory holding application.yaml and logging.yaml
    SHUTDOWN_GRACE  - Seconds to wait after closing connections
    LOG_LEVEL       - Overrides the level from logging.yaml

Settings (YAML):
    application.yaml   - Identity, registry keys and thresholds, shutdown, http
    logging.yaml       - Logging configuration
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from hydra_cli.core.config_schema import ApplicationSchema, LoggingSchema

PACKAGED_SETTINGS_DIR = Path(__file__).resolve().parent.parent / "settings"


class Settings(BaseSettings):
    """Environment overrides. Everything is optional."""

    state_file: Path | None = None
    settings_dir: Path | None = None
    shutdown_grace: float | None = None
    log_level: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="HYDRA_CLI_",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached environment settings."""
    return Settings()


def find_settings_dir() -> Path:
    """Return the directory YAML settings are read from."""
    override = get_settings().settings_dir
    if override is not None:
        return override.expanduser()
    return PACKAGED_SETTINGS_DIR


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML configuration file from the settings directory."""
    config_path = find_settings_dir() / filename

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _load_validated(schema_cls: type, filename: str) -> Any:
    """Load YAML and validate against schema. Returns typed model instance."""
    raw = load_yaml_config(filename)
    try:
        return schema_cls(**raw)
    except ValidationError as e:
        raise ValueError(
            f"Invalid configuration in {filename}:\n{e}"
        ) from e


class AppConfig:
    """
    Application configuration loaded from YAML files.

    Each YAML file is validated against its Pydantic schema at load time.
    Properties return typed Pydantic model instances with attribute access.
    """

    def __init__(self) -> None:
        self._application = _load_validated(ApplicationSchema, "application.yaml")
        self._logging = _load_validated(LoggingSchema, "logging.yaml")

    @property
    def application(self) -> ApplicationSchema:
        """Application settings."""
        return self._application

    @property
    def logging(self) -> LoggingSchema:
        """Logging settings."""
        return self._logging


@lru_cache
def get_app_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig()


def get_state_path() -> Path:
    """
    Resolve the profile state file location.

    Returns:
        HYDRA_CLI_STATE_FILE when set, otherwise the configured filename
        under the operator's home directory.
    """
    override = get_settings().state_file
    if override is not None:
        return override.expanduser()
    return Path.home() / get_app_config().application.state.filename


def get_shutdown_grace() -> float:
    """Seconds to wait after closing connections before the process exits."""
    override = get_settings().shutdown_grace
    if override is not None:
        return override
    return get_app_config().application.shutdown.grace_seconds

"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML settings file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in a command.

Each top-level class corresponds to one file in hydra_cli/settings/:
    ApplicationSchema  → application.yaml
    LoggingSchema      → logging.yaml
"""

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class RegistrySchema(_StrictBase):
    key_prefix: str
    connect_timeout: float = Field(gt=0)
    active_threshold: int = Field(ge=0)
    stale_threshold: int = Field(ge=0)
    health_log_limit: int = Field(gt=0)


class ShutdownSchema(_StrictBase):
    grace_seconds: float = Field(ge=0)


class HttpSchema(_StrictBase):
    request_timeout: float = Field(gt=0)


class StateSchema(_StrictBase):
    filename: str


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    description: str
    registry: RegistrySchema
    shutdown: ShutdownSchema
    http: HttpSchema
    state: StateSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: str
    handlers: HandlersSchema

"""
Registry Schemas.

Pydantic models for the records hydra-cli reads from the registry and the
values it builds to address other services. Registry records are validated
on read; a record that does not match is skipped by the engine rather than
passed through.
"""

import re
import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from hydra_cli.core.exceptions import InvalidArgumentsError
from hydra_cli.core.utils import to_naive_utc, utc_now

UMF_VERSION = "UMF/1.4.6"

HTTP_METHODS = frozenset({"get", "post", "put", "patch", "delete"})

BODYLESS_METHODS = frozenset({"get", "delete"})


# =============================================================================
# Nodes and health
# =============================================================================


class NodeEntry(BaseModel):
    """A service instance registration from the nodes hash."""

    model_config = ConfigDict(extra="allow")

    service_name: str = Field(alias="serviceName")
    instance_id: str = Field(alias="instanceID")
    updated_on: datetime = Field(alias="updatedOn")

    @field_validator("updated_on")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    def elapsed(self, now: datetime | None = None) -> int:
        """Whole seconds since the instance last reported in."""
        now = now or utc_now()
        return int((now - self.updated_on).total_seconds())

    def to_output(self, now: datetime | None = None) -> dict[str, Any]:
        """Serialize with the registry field names plus the derived `elapsed`."""
        data = self.model_dump(by_alias=True, mode="json")
        data["elapsed"] = self.elapsed(now)
        return data


class HealthSnapshot(BaseModel):
    """The latest health document an instance published."""

    model_config = ConfigDict(extra="allow")

    service_name: str | None = Field(default=None, alias="serviceName")

    def to_output(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class HealthEntry(BaseModel):
    """One line of an instance health log."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    ts: datetime | str
    process_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("processID", "process_id"),
    )
    message: str = Field(validation_alias=AliasChoices("message", "msg"))

    def to_output(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "ts": self.ts.isoformat() if isinstance(self.ts, datetime) else self.ts,
            "processID": self.process_id,
            "message": self.message,
        }


# =============================================================================
# Config labels
# =============================================================================


class ConfigLabel(BaseModel):
    """A `serviceName:version` label for one stored configuration."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    version: str

    @classmethod
    def parse(cls, label: str) -> "ConfigLabel":
        """
        Split a label into service name and version.

        Raises:
            InvalidArgumentsError: Unless the label has exactly two non-empty
                `:`-separated segments
        """
        segments = label.split(":")
        if len(segments) != 2 or not all(segment.strip() for segment in segments):
            raise InvalidArgumentsError(
                f"Invalid config label '{label}', expected serviceName:version",
                details={"label": label},
            )
        return cls(service_name=segments[0], version=segments[1])

    def __str__(self) -> str:
        return f"{self.service_name}:{self.version}"


# =============================================================================
# Routing and envelopes
# =============================================================================

_UMF_ROUTE = re.compile(
    r"^(?:(?P<instance>[^@:\[\]]+)@)?(?P<service>[^:@\[\]]+):"
    r"(?:\[(?P<method>[A-Za-z]+)\])?(?P<path>/\S*)?$"
)
_COMPACT_ROUTE = re.compile(r"^(?P<service>[^:@\[\]]+):(?P<method>[A-Za-z]+)@(?P<path>/\S*)$")


class RouteSpec(BaseModel):
    """Where a message or REST call is addressed."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    instance_id: str | None = None
    method: str = "get"
    path: str = "/"

    @classmethod
    def parse(cls, spec: str) -> "RouteSpec":
        """
        Parse `[instance@]service:[method]/path` or `service:method@/path`.

        Raises:
            InvalidArgumentsError: If the spec matches neither form or names
                an unsupported HTTP method
        """
        match = _COMPACT_ROUTE.match(spec) or _UMF_ROUTE.match(spec)
        if match is None:
            raise InvalidArgumentsError(
                f"Invalid route '{spec}', expected service:[method]/path",
                details={"route": spec},
            )
        groups = match.groupdict()
        method = (groups.get("method") or "get").lower()
        if method not in HTTP_METHODS:
            raise InvalidArgumentsError(f"Unsupported HTTP method '{method}' in '{spec}'")
        return cls(
            service_name=groups["service"],
            instance_id=groups.get("instance"),
            method=method,
            path=groups.get("path") or "/",
        )

    def to_umf(self) -> str:
        """Render in the UMF `to` format."""
        head = f"{self.instance_id}@" if self.instance_id else ""
        return f"{head}{self.service_name}:[{self.method}]{self.path}"


class Envelope(BaseModel):
    """
    Uniform message envelope.

    `to` and `from` are route specs; `mid` and `timestamp` are filled in
    when a caller does not provide them.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    to: str = Field(min_length=1)
    from_: str = Field(alias="from", min_length=1)
    mid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat() + "Z")
    version: str = UMF_VERSION
    headers: dict[str, str] | None = None
    body: Any = Field(default_factory=dict)

    def route(self) -> RouteSpec:
        """Parse the destination."""
        return RouteSpec.parse(self.to)

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the transport with `from` restored."""
        return self.model_dump(by_alias=True, exclude_none=True)

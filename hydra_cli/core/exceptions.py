"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.
Every error raised inside a command is caught at the dispatcher boundary
and reported as a single line of output.
"""


class HydraCliError(Exception):
    """Base exception for all hydra-cli errors."""

    fatal = False

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class ConfigAbsentError(HydraCliError):
    """Raised when no profile state has been persisted yet."""

    def __init__(
        self,
        message: str = "hydra-cli is not configured. Run `hydra-cli config <name>` first.",
    ) -> None:
        super().__init__(message, code="CFG_ABSENT")


class ConfigCorruptError(HydraCliError):
    """Raised when the persisted profile state cannot be parsed."""

    def __init__(self, message: str = "Profile state is corrupt") -> None:
        super().__init__(message, code="CFG_CORRUPT")


class ProfileStoreError(HydraCliError):
    """Raised when the profile state cannot be written."""

    def __init__(self, message: str = "Unable to write profile state") -> None:
        super().__init__(message, code="CFG_IO_ERROR")


class ConnectionTimeoutError(HydraCliError):
    """Raised when the registry handshake does not finish in time."""

    fatal = True

    def __init__(self, message: str = "Timed out connecting to the registry") -> None:
        super().__init__(message, code="CONN_TIMEOUT")


class RegistryConnectionError(HydraCliError):
    """Raised when the registry refuses or drops the connection."""

    fatal = True

    def __init__(self, message: str = "Unable to connect to the registry") -> None:
        super().__init__(message, code="CONN_ERROR")


class NotFoundError(HydraCliError):
    """Raised when a profile, config label or node cannot be found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, code="RES_NOT_FOUND")


class InvalidArgumentsError(HydraCliError):
    """Raised when a command is called with a malformed argument shape."""

    def __init__(self, message: str = "Invalid arguments", details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message, code="VAL_INVALID_ARGUMENTS")


class UpstreamError(HydraCliError):
    """Raised when the registry or the message transport returns an error."""

    def __init__(self, message: str = "Upstream service error") -> None:
        super().__init__(message, code="SYS_UPSTREAM_ERROR")

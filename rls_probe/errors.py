"""Exception hierarchy for rls-probe."""

from __future__ import annotations


class RLSProbeError(Exception):
    """Base class for all rls-probe errors."""


class ConfigError(RLSProbeError):
    """Bad target URL or credential shape. Raised before any network call."""


class TransportError(RLSProbeError):
    """The REST endpoint answered with an error, or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportTimeout(RLSProbeError):
    """The REST endpoint did not answer in time. Never counts as a denial."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SchemaFetchError(RLSProbeError):
    """Schema retrieval failed for a reason other than blocked access."""


class SchemaParseError(SchemaFetchError):
    """The schema payload has no usable ``definitions`` container."""


class SchemaAccessBlocked(RLSProbeError):
    """Introspection is disabled or the API key was rejected."""


class ProbeError(RLSProbeError):
    """A single table's probe failed unexpectedly."""

    def __init__(self, table: str, operation: str, message: str):
        super().__init__(f"{operation} probe on '{table}' failed: {message}")
        self.table = table
        self.operation = operation


class ProbeTimeout(ProbeError):
    def __init__(self, table: str, operation: str, timeout: float):
        super().__init__(table, operation, f"timed out after {timeout:g}s")
        self.timeout = timeout


class PhaseError(RLSProbeError):
    """An exception escaped a whole phase; the remaining phases are skipped."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"Error during {operation} check: {type(cause).__name__}: {cause}")
        self.operation = operation
        self.cause = cause

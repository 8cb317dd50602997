"""
Exception hierarchy for EXEX.

All EXEX exceptions inherit from ExexError, allowing callers to catch
all EXEX-specific exceptions with a single except clause.

Exception Categories:
    - PolicyDeniedError: Request blocked by policy (HTTP 403)
    - PathResolutionError: Path could not be canonicalized (always a denial)
    - OperationError: OS operation failed after policy allowed it
    - ConfigError: Configuration file missing, malformed or invalid
    - StorageError: Audit database operation failed

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (operation, path, command where applicable)
    - Policy denials and OS failures are separate branches of the tree
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Policy errors: 1xxx
ERROR_POLICY_DENIED = 1001
ERROR_POLICY_PATH_UNRESOLVABLE = 1009
ERROR_POLICY_RESOLVE_TIMEOUT = 1010

# Operation errors: 2xxx
ERROR_OPERATION_NOT_FOUND = 2001
ERROR_OPERATION_FAILED = 2003

# Configuration errors: 3xxx
ERROR_CONFIG_INVALID = 3001
ERROR_CONFIG_PARSE = 3003

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ExexError(Exception):
    """
    Base exception for all EXEX errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyDeniedError(ExexError):
    """
    Raised when a request is blocked by the policy.

    Attributes:
        operation: Name of the operation that was blocked
        reason: Why the policy denied this action
        rule: Which policy rule caused the denial
    """

    operation: str = ""
    reason: str = ""
    rule: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Policy denied {self.operation}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_DENIED
        self.context.update({
            "operation": self.operation,
            "reason": self.reason,
            "rule": self.rule,
        })


@dataclass
class PathResolutionError(ExexError):
    """
    Raised when neither a path nor its parent can be canonicalized.

    The policy engine turns this into a denial; it never reaches callers
    of the decision functions.
    """

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot resolve path {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_POLICY_PATH_UNRESOLVABLE
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class PathResolutionTimeoutError(PathResolutionError):
    """Raised when canonicalizing a path takes longer than allowed."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Resolving {self.path} timed out after {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_POLICY_RESOLVE_TIMEOUT
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


# =============================================================================
# Operation Errors
# =============================================================================


@dataclass
class OperationError(ExexError):
    """
    Base class for operation failures.

    These errors occur after the policy allowed the request, when the
    operating system refuses or the operation itself fails.

    Attributes:
        operation: Name of the operation that failed
        operation_args: Arguments that were provided
    """

    operation: str = ""
    operation_args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "operation": self.operation,
            "operation_args": self.operation_args,
        })


@dataclass
class OperationNotFoundError(OperationError):
    """Raised when no tool is registered for an operation."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Operation not found: {self.operation}"
        if self.code == 0:
            self.code = ERROR_OPERATION_NOT_FOUND
        super().__post_init__()


@dataclass
class OperationFailedError(OperationError):
    """Raised when an OS operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Operation {self.operation} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_OPERATION_FAILED
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(ExexError):
    """
    Base class for configuration errors.

    Attributes:
        config_path: The file being loaded (if any)
    """

    config_path: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["config_path"] = self.config_path


@dataclass
class ConfigValidationError(ConfigError):
    """Raised when a configuration is structurally valid but unusable."""

    field_name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration field: {self.field_name}"
        super().__post_init__()
        self.context["field"] = self.field_name


@dataclass
class ConfigParseError(ConfigError):
    """Raised when a configuration file cannot be decoded."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot parse configuration: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_PARSE
        if not self.suggestion:
            self.suggestion = "Delete the file to recreate it with defaults"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ExexError):
    """
    Base class for audit database errors.

    Attributes:
        operation: The database operation that failed (e.g., "insert")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the audit database cannot be opened."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error

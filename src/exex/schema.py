"""
Schema definitions for EXEX.

This module defines the Pydantic models used throughout EXEX:
- Config and its sections: what the daemon is allowed to touch
- PolicyDecision: The result of policy evaluation
- Request/Response models: The HTTP wire format of each operation

Design Decisions:
    - Configuration models are frozen: built once at startup, never mutated
    - Configuration models forbid unknown keys so typos surface at load time
    - Wire models ignore unknown keys
    - Response field names are part of the public HTTP API
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Verdict(str, Enum):
    """The two possible outcomes of a policy decision."""

    ALLOW = "allow"
    DENY = "deny"


class OperationStatus(str, Enum):
    """Outcome of a dispatched request."""

    SUCCESS = "success"
    ERROR = "error"
    DENIED = "denied"


# Substrings that mark a command as destructive regardless of the whitelist.
# Matched case-insensitively against the full command line.
DEFAULT_DANGEROUS_SUBSTRINGS: tuple[str, ...] = (
    "format",
    "del",
    "rmdir",
    "rd",
    "deltree",
    "shutdown",
    "restart",
    "reboot",
    "net user",
    "net localgroup",
    "reg delete",
    "reg add",
    "sc delete",
    "sc create",
    "rm -rf",
    "rm -fr",
    "mkfs",
    "userdel",
    "groupdel",
)


# =============================================================================
# Configuration Models
# =============================================================================


class ServerConfig(BaseModel):
    """
    Where the daemon listens.

    Attributes:
        host: Interface to bind (loopback by default)
        port: TCP port to bind
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=8080, description="TCP port to bind", ge=1, le=65535)


class SecurityConfig(BaseModel):
    """
    Policy rules for paths and commands.

    Path rules are prefixes, not globs. A path under any entry of
    allowed_paths is allowed even when it is also under an entry of
    disallowed_paths. Anything matching neither list falls back to
    default_allow.

    Attributes:
        allowed_paths: Path prefixes that override the deny list
        disallowed_paths: Path prefixes that are denied
        command_whitelist: If non-empty, the only commands that may run
        command_blacklist: Commands that never run (wins over the whitelist)
        max_file_size_mb: Largest file that may be read or written
        default_allow: Verdict for paths matching neither list
        dangerous_substrings: Substrings that mark a command line as destructive
        resolve_timeout_seconds: Bound on a single path canonicalization
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed_paths: list[str] = Field(
        default_factory=list,
        description="Path prefixes that override the deny list",
    )
    disallowed_paths: list[str] = Field(
        default_factory=list,
        description="Path prefixes that are denied",
    )
    command_whitelist: list[str] = Field(
        default_factory=list,
        description="If non-empty, only these commands may run",
    )
    command_blacklist: list[str] | None = Field(
        default=None,
        description="Commands that are always denied",
    )
    max_file_size_mb: int = Field(
        default=100,
        description="Largest file that may be read or written, in MiB",
        ge=0,
    )
    default_allow: bool = Field(
        default=True,
        description="Allow paths that match neither list",
    )
    dangerous_substrings: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_SUBSTRINGS),
        description="Case-insensitive substrings that mark a command as destructive",
    )
    resolve_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for canonicalizing one path (0 = no timeout)",
        ge=0,
    )

    @property
    def max_file_size_bytes(self) -> int:
        """The size limit in bytes."""
        return self.max_file_size_mb * 1024 * 1024


class ExecConfig(BaseModel):
    """
    Limits for command execution.

    Attributes:
        timeout_seconds: Wall-clock limit for one command
        max_output_bytes: Cap on each of stdout and stderr
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: int = Field(
        default=60,
        description="Command execution timeout",
        gt=0,
        le=3600,
    )
    max_output_bytes: int = Field(
        default=1024 * 1024,  # 1 MB
        description="Maximum size of stdout and of stderr",
        gt=0,
    )


class LoggingConfig(BaseModel):
    """
    Logging and audit destinations.

    Attributes:
        level: Log level name (debug, info, warning, error)
        audit_file: File receiving a copy of all log records
        audit_db: SQLite database for the request audit trail (None = disabled)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = Field(default="info", description="Log level name")
    audit_file: str = Field(default="exex-audit.log", description="Log file path")
    audit_db: str | None = Field(default=None, description="Audit database path")


class Config(BaseModel):
    """
    Complete daemon configuration.

    Loaded once at startup and handed by reference to the policy engine,
    the dispatcher and the HTTP app.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(default="1.0", description="Configuration schema version")
    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    execution: ExecConfig = Field(default_factory=ExecConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class LegacyConfig(BaseModel):
    """
    Flat configuration format written by early releases.

    Only path rules were configurable; everything else takes defaults.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: str
    exex_project: str | None = None
    created: str | None = None
    disallowed_paths: list[str]
    allowed_paths: list[str] = Field(default_factory=list)

    def upgrade(self) -> Config:
        """Convert to the current configuration format."""
        return Config(
            version=self.version,
            security=SecurityConfig(
                allowed_paths=list(self.allowed_paths),
                disallowed_paths=list(self.disallowed_paths),
            ),
        )


# =============================================================================
# Policy Decision
# =============================================================================


class PolicyDecision(BaseModel):
    """
    Result of evaluating a request against the policy.

    Attributes:
        allowed: Whether the action is permitted
        reason: Human-readable explanation of the decision
        rule_matched: Which policy rule caused this decision
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool = Field(..., description="Whether the action is permitted")
    reason: str = Field(..., description="Human-readable explanation of the decision")
    rule_matched: str | None = Field(
        default=None,
        description="Which policy rule caused this decision",
    )

    @property
    def verdict(self) -> Verdict:
        """The decision as an Allow/Deny value."""
        return Verdict.ALLOW if self.allowed else Verdict.DENY

    @classmethod
    def allow(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create an ALLOW decision."""
        return cls(allowed=True, reason=reason, rule_matched=rule)

    @classmethod
    def deny(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create a DENY decision."""
        return cls(allowed=False, reason=reason, rule_matched=rule)


# =============================================================================
# Audit Trail
# =============================================================================


class AuditEvent(BaseModel):
    """
    One dispatched request as recorded in the audit database.

    Attributes:
        event_id: Unique identifier for the event
        timestamp: When the request was dispatched (UTC)
        operation: Operation name (e.g., "fs.read")
        target: Primary path or command of the request
        args: Request arguments (file content omitted)
        status: success, error or denied
        reason: Policy decision reason
        rule: Policy rule that decided
        error: Error message for failed operations
        duration_ms: Time spent in policy evaluation plus execution
        input_hash: SHA-256 of the request arguments
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    timestamp: datetime
    operation: str
    target: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    status: OperationStatus
    reason: str = ""
    rule: str | None = None
    error: str | None = None
    duration_ms: float = 0.0
    input_hash: str = ""


# =============================================================================
# Request Models
# =============================================================================


class ExecRequest(BaseModel):
    """Run a command. Without args the command line goes through the shell."""

    command: str
    args: list[str] | None = None
    cwd: str | None = None


class ReadRequest(BaseModel):
    path: str


class WriteRequest(BaseModel):
    path: str
    content: str


class ScanRequest(BaseModel):
    path: str
    recursive: bool = False
    include_hidden: bool = False


class DeleteRequest(BaseModel):
    path: str
    recursive: bool = False


class CreateRequest(BaseModel):
    path: str
    is_directory: bool
    content: str | None = None


class RenameRequest(BaseModel):
    from_path: str
    to_path: str


class OpenAppRequest(BaseModel):
    application: str
    args: list[str] | None = None
    cwd: str | None = None


# =============================================================================
# Response Models
# =============================================================================


class FileInfo(BaseModel):
    """One directory entry as reported by a scan."""

    name: str
    path: str
    is_directory: bool
    size: int | None = None
    modified: str | None = None
    created: str | None = None
    permissions: str | None = None


class ExecResponse(BaseModel):
    success: bool
    stdout: str
    stderr: str
    exit_code: int | None = None


class ReadResponse(BaseModel):
    success: bool
    content: str | None = None
    error: str | None = None


class WriteResponse(BaseModel):
    success: bool
    error: str | None = None


class ScanResponse(BaseModel):
    success: bool
    items: list[FileInfo] | None = None
    total_count: int | None = None
    error: str | None = None


class DeleteResponse(BaseModel):
    success: bool
    deleted_count: int | None = None
    error: str | None = None


class CreateResponse(BaseModel):
    success: bool
    created_path: str | None = None
    error: str | None = None


class RenameResponse(BaseModel):
    success: bool
    old_path: str | None = None
    new_path: str | None = None
    error: str | None = None


class OpenAppResponse(BaseModel):
    success: bool
    pid: int | None = None
    error: str | None = None


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


# =============================================================================
# Loading Helpers
# =============================================================================


def parse_config_data(data: Any) -> Config:
    """
    Build a Config from decoded JSON/YAML data.

    Accepts both the current nested format and the legacy flat format
    (top-level disallowed_paths/allowed_paths).

    Raises:
        ValidationError: If the data matches neither format
    """
    if isinstance(data, dict) and "security" not in data and "disallowed_paths" in data:
        return LegacyConfig.model_validate(data).upgrade()
    return Config.model_validate(data)


def load_config_file(path: Path | str) -> Config:
    """
    Load a configuration file.

    JSON is the native format; files ending in .yaml or .yml are read
    as YAML.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the content cannot be decoded
        ValidationError: If the content doesn't match the schema
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    fmt = "yaml" if path.suffix.lower() in (".yaml", ".yml") else "json"
    return load_config_from_string(content, fmt=fmt)


def load_config_from_string(content: str, fmt: str = "json") -> Config:
    """Load a configuration from a JSON or YAML string."""
    if fmt == "yaml":
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)
    return parse_config_data(data)

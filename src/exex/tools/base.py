"""
Base classes for the tool interface.

This module defines the core abstractions for tools in EXEX:
- Tool: Abstract base class that all tools must implement
- ToolContext: Runtime context passed to tools during execution
- ToolOutput: Standardized result format from tool execution

Design Principles:
    - Tools are stateless - all state comes from ToolContext
    - Tools run after the policy engine allowed the request
    - Tools return ToolOutput - never raise exceptions for expected failures
    - Tools are registered by name - the registry handles lookup
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from exex.schema import ExecConfig

if TYPE_CHECKING:
    from exex.policy import PolicyEngine


@dataclass(frozen=True)
class ToolOutput:
    """
    Standardized output from tool execution.

    Every tool returns a ToolOutput, whether successful or failed.

    Attributes:
        success: Whether the tool executed successfully
        data: Response fields produced by the tool (dict keyed like the HTTP response)
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolOutput":
        """Create a successful output."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutput":
        """Create a failed output."""
        return cls(success=False, error=error, metadata=metadata)


@dataclass
class ToolContext:
    """
    Runtime context passed to tools during execution.

    Attributes:
        policy: The policy engine (used by tools that make further
            decisions while running, like a recursive scan)
        working_dir: Base for relative paths (None = process cwd)
        exec_config: Limits for spawned commands
        metadata: Additional context-specific metadata
    """

    policy: "PolicyEngine | None" = None
    working_dir: str | None = None
    exec_config: ExecConfig = field(default_factory=ExecConfig)
    metadata: dict[str, Any] = field(default_factory=dict)

    def resolve(self, path_str: str) -> Path:
        """
        Join a relative path onto the working directory.

        Symlinks are deliberately not followed here: delete and rename
        must act on the link itself.
        """
        path = Path(path_str)
        if not path.is_absolute() and self.working_dir:
            path = Path(self.working_dir) / path
        return path


class Tool(ABC):
    """
    Abstract base class for all EXEX tools.

    Each tool:
    - Has a unique name matching its operation (e.g., "fs.read", "exec")
    - Defines what arguments it accepts
    - Implements the execute() method
    - Returns a ToolOutput

    Example:
        class EchoTool(Tool):
            @property
            def name(self) -> str:
                return "echo"

            def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
                return ToolOutput.ok({"message": args.get("message", "")})
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        The unique identifier for this tool.

        Names follow the convention namespace.action, except the bare
        "exec" operation.
        """
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        return f"Tool: {self.name}"

    @abstractmethod
    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        """
        Execute the tool with the given arguments.

        This method is called after policy evaluation has passed.

        Note:
            - Do NOT raise exceptions for expected failures (file not found, etc.)
            - Use ToolOutput.fail() for expected errors
            - Only raise exceptions for unexpected/programming errors
        """
        ...

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """
        Validate the arguments for this tool.

        Returns:
            List of validation error messages (empty if valid)
        """
        return []

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"


def require_string(args: dict[str, Any], key: str, errors: list[str]) -> None:
    """Append an error unless args[key] is a non-empty string."""
    if key not in args or args[key] is None:
        errors.append(f"'{key}' is required")
    elif not isinstance(args[key], str):
        errors.append(f"'{key}' must be a string")
    elif not args[key].strip():
        errors.append(f"'{key}' cannot be empty")


def optional_bool(args: dict[str, Any], key: str, errors: list[str]) -> None:
    """Append an error if args[key] is present and not a boolean."""
    if args.get(key) is not None and not isinstance(args[key], bool):
        errors.append(f"'{key}' must be a boolean")


def optional_string_list(args: dict[str, Any], key: str, errors: list[str]) -> None:
    """Append an error if args[key] is present and not a list of strings."""
    value = args.get(key)
    if value is None:
        return
    if not isinstance(value, list):
        errors.append(f"'{key}' must be a list of strings")
        return
    for i, element in enumerate(value):
        if not isinstance(element, str):
            errors.append(f"'{key}[{i}]' must be a string, got {type(element).__name__}")
            break

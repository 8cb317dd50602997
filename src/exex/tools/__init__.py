"""
Tools module for EXEX.

This module provides the tool interface and the built-in operations the
daemon exposes.

Built-in tools:
    - exec: Run a command
    - fs.read, fs.write, fs.scan, fs.delete, fs.create, fs.rename
    - app.open: Launch an application

Architecture:
    - Tool: Abstract base class defining the tool interface
    - ToolRegistry: Central registry for looking up tools by name
    - ToolContext: Runtime context passed to tools (policy, working dir, limits)
    - ToolOutput: Standardized result format from tool execution

Policy enforcement happens BEFORE tool execution, not within tools.
"""

from exex.tools.app import AppOpenTool, register_app_tools
from exex.tools.base import Tool, ToolContext, ToolOutput
from exex.tools.fs import (
    FsCreateTool,
    FsDeleteTool,
    FsReadTool,
    FsRenameTool,
    FsScanTool,
    FsWriteTool,
    register_fs_tools,
)
from exex.tools.registry import (
    ToolRegistry,
    default_registry,
)
from exex.tools.shell import ExecTool, register_shell_tools


def register_builtin_tools(registry: ToolRegistry | None = None) -> ToolRegistry:
    """Register every built-in tool and return the registry used."""
    target = registry if registry is not None else default_registry
    register_shell_tools(target)
    register_fs_tools(target)
    register_app_tools(target)
    return target


# Register built-in tools
register_builtin_tools()

__all__ = [
    "Tool",
    "ToolContext",
    "ToolOutput",
    "ToolRegistry",
    "default_registry",
    "register_builtin_tools",
    "AppOpenTool",
    "ExecTool",
    "FsCreateTool",
    "FsDeleteTool",
    "FsReadTool",
    "FsRenameTool",
    "FsScanTool",
    "FsWriteTool",
]

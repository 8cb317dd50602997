"""
Tool registry for EXEX.

The registry maps operation names to the tools that carry them out.

Usage:
    from exex.tools.registry import default_registry

    # Register a tool
    default_registry.register(MyTool())

    # Look up a tool
    tool = default_registry.get("fs.read")
"""

import logging
from typing import Iterator

from exex.errors import OperationNotFoundError
from exex.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry for looking up tools by name.

    Attributes:
        _tools: Internal mapping of tool names to tool instances
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the registry.

        A tool registered under an existing name replaces the old one.

        Raises:
            ValueError: If tool is None or has an empty name
        """
        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)

        name = tool.name
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)

        if name in self._tools:
            logger.debug("Replacing registered tool %s", name)

        self._tools[name] = tool

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            OperationNotFoundError: If no tool with that name is registered
        """
        tool = self._tools.get(name)
        if tool is None:
            raise OperationNotFoundError(operation=name)
        return tool

    def list_tools(self) -> list[str]:
        """List all registered tool names in sorted order."""
        return sorted(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        tools = ", ".join(self.list_tools())
        return f"<ToolRegistry: [{tools}]>"


# Registry used by the dispatcher unless overridden
default_registry = ToolRegistry()


"""
Tool registry — named lookup for all tool adapters.

Steps resolve their tools here, and the version report walks the
registry, so swapping a tool for a MockTool in tests is one
``register`` call.
"""

from __future__ import annotations

import logging

from devbox.adapters.base import ToolAdapter

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Central registry of tool adapters, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolAdapter] = {}

    def register(self, tool: ToolAdapter) -> None:
        name = tool.name
        if name in self._tools:
            logger.warning("Overwriting existing tool: %s", name)
        self._tools[name] = tool
        logger.debug("Registered tool: %s", name)

    def get(self, name: str) -> ToolAdapter | None:
        return self._tools.get(name)

    def require(self, name: str) -> ToolAdapter:
        """Like ``get`` but raises KeyError for an unknown tool."""
        try:
            return self._tools[name]
        except KeyError:
            raise KeyError(f"No tool registered as '{name}'") from None

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

"""
Tool registry - the global capability catalog.

Tools are registered once at process start and shared by reference across
personas and calls.
"""

from typing import Dict, Iterable, List, Optional, Type, Union

import structlog

from switchboard.tools.base import Tool, ToolDefinition

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """
    Registry for all available tools.

    Manages tool registration, lookup, and schema generation.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Union[Tool, Type[Tool]]) -> None:
        """
        Register a tool class or instance.

        Example:
            registry.register(GetPickupTimesTool)
        """
        if isinstance(tool, type):
            tool = tool()
        tool_name = tool.definition.name

        if tool_name in self._tools:
            logger.warning("Tool already registered, overwriting", tool=tool_name)

        self._tools[tool_name] = tool
        logger.debug("Registered tool", tool=tool_name, category=tool.definition.category.value)

    def get(self, name: str) -> Optional[Tool]:
        """Get tool by name, or None if not registered."""
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get_definitions(self, names: Optional[Iterable[str]] = None) -> List[ToolDefinition]:
        """
        Get tool definitions, optionally restricted to (and ordered by) names.

        Unknown names are skipped.
        """
        if names is None:
            return [tool.definition for tool in self._tools.values()]
        return [self._tools[name].definition for name in names if name in self._tools]

    def to_openai_realtime_schema(self, names: Optional[Iterable[str]] = None) -> List[Dict]:
        """
        Export tools in OpenAI Realtime API format (flat function schema).

        Args:
            names: Restrict the export to these tools, in this order

        Returns:
            List of tool schemas for session.update
        """
        return [definition.to_openai_realtime_schema() for definition in self.get_definitions(names)]

    def initialize_default_tools(self) -> None:
        """Register all built-in tools."""
        from switchboard.tools.business.pickup_times import GetPickupTimesTool
        from switchboard.tools.business.item_info import GetItemInfoTool
        from switchboard.tools.routing.transfer import (
            TransferToItemsTool,
            TransferToMainMenuTool,
            TransferToPickupTool,
        )

        for tool_class in (
            GetPickupTimesTool,
            GetItemInfoTool,
            TransferToPickupTool,
            TransferToItemsTool,
            TransferToMainMenuTool,
        ):
            self.register(tool_class)

        logger.info("Initialized default tools", count=len(self._tools), tools=self.names())


def build_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.initialize_default_tools()
    return registry

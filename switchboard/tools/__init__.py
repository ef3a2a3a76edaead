"""
Tool calling: definitions, the capability catalog and the dispatcher.
"""

from switchboard.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from switchboard.tools.context import ToolExecutionContext
from switchboard.tools.registry import ToolRegistry, build_default_registry
from switchboard.tools.dispatcher import CapabilityDispatcher

__all__ = [
    "Tool",
    "ToolCategory",
    "ToolDefinition",
    "ToolParameter",
    "ToolExecutionContext",
    "ToolRegistry",
    "build_default_registry",
    "CapabilityDispatcher",
]

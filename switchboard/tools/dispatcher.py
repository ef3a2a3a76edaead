"""
Capability dispatcher.

Turns a model tool call (name + raw JSON arguments) into a structured result
with a sentence the caller will hear. Nothing a tool call can do, from bad
JSON to a crashed lookup, escapes as an exception into the call session.
"""

import asyncio
import json
from typing import Any, Dict, Iterable, Optional, Union

import structlog

from switchboard import metrics
from switchboard.tools.base import error_result
from switchboard.tools.context import ToolExecutionContext
from switchboard.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)


class CapabilityDispatcher:
    """Validates and executes tool calls against the registry."""

    def __init__(self, registry: ToolRegistry, answers):
        self._registry = registry
        self._answers = answers

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def invoke(
        self,
        name: str,
        raw_arguments: Union[str, Dict[str, Any], None],
        context: ToolExecutionContext,
        allowed_tools: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a tool call.

        Args:
            name: Tool name requested by the model
            raw_arguments: JSON string (or already decoded object) of arguments
            context: Execution context for this call
            allowed_tools: Capability set of the active persona; a tool outside
                it is rejected even if the registry knows it

        Returns:
            Tool result dict; on any failure an error result whose message is
            the caller-safe fallback sentence
        """
        log = logger.bind(call_id=context.call_id, tool=name, persona=context.persona)

        if allowed_tools is not None and name not in set(allowed_tools):
            log.warning("Tool not available to active persona")
            return self._fail(name, "tool_not_available")

        tool = self._registry.get(name)
        if tool is None:
            log.warning("Unknown tool requested")
            return self._fail(name, "unknown_tool")

        try:
            parameters = self._parse_arguments(raw_arguments)
            await tool.validate_parameters(parameters)
        except ValueError as exc:
            log.warning("Invalid tool arguments", error=str(exc))
            return self._fail(name, "invalid_arguments")

        timeout = tool.definition.max_execution_time
        try:
            result = await asyncio.wait_for(tool.execute(parameters, context), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("Tool execution timed out", timeout_sec=timeout)
            return self._fail(name, "timeout")
        except Exception:
            log.error("Tool execution failed", exc_info=True)
            return self._fail(name, "execution_failed")

        outcome = result.get("outcome") or result.get("status", "success")
        metrics.TOOL_INVOCATIONS.labels(tool=name, outcome=outcome).inc()
        log.info("Tool executed", outcome=outcome, status=result.get("status"))
        return result

    @staticmethod
    def _parse_arguments(raw_arguments: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
        if raw_arguments is None:
            return {}
        if isinstance(raw_arguments, dict):
            return raw_arguments
        if not isinstance(raw_arguments, str):
            raise ValueError(f"Arguments must be a JSON string, got {type(raw_arguments).__name__}")
        if not raw_arguments.strip():
            return {}
        try:
            parameters = json.loads(raw_arguments)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Arguments are not valid JSON: {exc}")
        if not isinstance(parameters, dict):
            raise ValueError(f"Arguments must be a JSON object, got {type(parameters).__name__}")
        return parameters

    def _fail(self, name: str, reason: str) -> Dict[str, Any]:
        metrics.TOOL_INVOCATIONS.labels(tool=name, outcome=reason).inc()
        return error_result(self._answers.fallback_error, reason)

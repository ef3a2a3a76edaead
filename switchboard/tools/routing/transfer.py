"""
Hand-off tools - move the caller to another persona on the same call.

These tools do not touch the session themselves. They return the spoken
acknowledgment plus a ``handoff`` directive; the orchestrator applies the
switch through the hand-off controller once the result is sent back.
"""

from typing import Any, Dict

import structlog

from switchboard.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from switchboard.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class HandoffTool(Tool):
    """Base for tools that transfer the caller to a target persona."""

    tool_name: str = ""
    target_persona: str = ""
    description: str = ""
    acknowledgment: str = ""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.tool_name,
            description=self.description,
            category=ToolCategory.ROUTING,
            max_execution_time=2.0,
            parameters=[
                ToolParameter(
                    name="caller_question",
                    type="string",
                    description=(
                        "The caller's unanswered question in their own words, so the next "
                        "specialist can pick it up without asking again."
                    ),
                    nullable=True,
                ),
            ],
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        question = parameters.get("caller_question")
        carried = question.strip() if isinstance(question, str) and question.strip() else None

        logger.info(
            "Hand-off requested",
            call_id=context.call_id,
            source=context.persona,
            target=self.target_persona,
            carries_context=carried is not None,
        )
        return {
            "status": "success",
            "message": self.acknowledgment,
            "handoff": {
                "target": self.target_persona,
                "carried_context": carried,
            },
        }


class TransferToPickupTool(HandoffTool):
    tool_name = "transfer_to_pickup"
    target_persona = "pickup"
    description = "Transfer caller to the pickup scheduling department."
    acknowledgment = "Transferring you to the pickup specialist."


class TransferToItemsTool(HandoffTool):
    tool_name = "transfer_to_items"
    target_persona = "items"
    description = "Transfer caller to the item information department."
    acknowledgment = "Transferring you to the item specialist."


class TransferToMainMenuTool(HandoffTool):
    tool_name = "transfer_to_main_menu"
    target_persona = "router"
    description = "Go back to the main menu/receptionist."
    acknowledgment = "One moment, let me get the receptionist."

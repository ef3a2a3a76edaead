"""
Item Info Tool

Answers kashrus and description questions about catalog items.
"""

from collections import Counter
from typing import Any, Dict, List

import structlog

from switchboard.answers import oxford_join
from switchboard.lookups import CatalogItem, LookupServiceError
from switchboard.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, error_result
from switchboard.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

OUTCOME_RESOLVED = "resolved"
OUTCOME_AMBIGUOUS = "ambiguous"
OUTCOME_NOT_FOUND = "not_found"

FOCUS_KASHRUS = "kashrus"
FOCUS_DESCRIPTION = "description"
FOCUS_BOTH = "both"


class GetItemInfoTool(Tool):
    """Look up an item by name and speak its hechsher, description, or both."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_item_info",
            description=(
                "Get kashrus (hechsher) or description for an item. "
                "Use focus to choose what the caller asked about."
            ),
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(
                    name="item_query",
                    type="string",
                    description="Item name as the caller said it",
                    required=True,
                ),
                ToolParameter(
                    name="focus",
                    type="string",
                    description="What the caller wants to know",
                    required=True,
                    enum=[FOCUS_KASHRUS, FOCUS_DESCRIPTION, FOCUS_BOTH],
                ),
            ],
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        answers = context.answers
        query = parameters["item_query"].strip()
        focus = parameters["focus"]

        if not query:
            return self._result(OUTCOME_NOT_FOUND, answers.render("item_not_found", item="that"))

        try:
            matches = await context.catalog.search(query)
        except LookupServiceError as exc:
            logger.warning("Item lookup failed", call_id=context.call_id, query=query, error=str(exc))
            return error_result(answers.fallback_error, "lookup_failed")

        matches = _dedupe(matches)

        if not matches:
            logger.info("No item matched", call_id=context.call_id, query=query)
            return self._result(OUTCOME_NOT_FOUND, answers.render("item_not_found", item=query))

        if len(matches) > 1:
            names = _candidate_labels(matches)
            logger.info("Ambiguous item query", call_id=context.call_id, query=query, candidates=names)
            return self._result(
                OUTCOME_AMBIGUOUS,
                answers.render("item_ambiguous", names=oxford_join(names)),
                has_results=True,
                candidates=names,
            )

        item = matches[0]
        template = _template_for(focus, item)
        return self._result(
            OUTCOME_RESOLVED,
            answers.render(
                template,
                item=item.name,
                hechsher=item.hechsher or "",
                description=item.description or "",
            ),
            has_results=True,
            item=item.name,
            hechsher=item.hechsher,
            description=item.description,
        )

    @staticmethod
    def _result(outcome: str, message: str, *, has_results: bool = False, **fields: Any) -> Dict[str, Any]:
        result = {
            "status": "success",
            "outcome": outcome,
            "has_results": has_results,
            "message": message,
        }
        result.update(fields)
        return result


def _dedupe(matches: List[CatalogItem]) -> List[CatalogItem]:
    """Drop rows that repeat an earlier row on name, hechsher and description."""
    seen = set()
    unique = []
    for item in matches:
        key = (item.name.casefold(), _clean(item.hechsher), _clean(item.description))
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def _candidate_labels(matches: List[CatalogItem]) -> List[str]:
    # Rows sharing a name are told apart by their hechsher
    counts = Counter(item.name.casefold() for item in matches)
    labels = []
    for item in matches:
        if counts[item.name.casefold()] == 1:
            labels.append(item.name)
        elif item.hechsher:
            labels.append(f"{item.name} under the {item.hechsher} hechsher")
        else:
            labels.append(f"{item.name} with no hechsher listed")
    return labels


def _clean(value) -> str:
    return " ".join(str(value or "").split()).casefold()


def _template_for(focus: str, item: CatalogItem) -> str:
    has_hechsher = bool(item.hechsher)
    has_description = bool(item.description)
    if focus == FOCUS_KASHRUS and has_hechsher:
        return "item_kashrus"
    if focus == FOCUS_DESCRIPTION and has_description:
        return "item_description"
    if has_hechsher and has_description:
        return "item_full"
    if has_hechsher:
        return "item_kashrus"
    if has_description:
        return "item_description"
    return "item_not_found"

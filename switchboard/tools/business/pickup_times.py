"""
Pickup Times Tool

Answers "when and where is pickup" for a caller's region or city from the
pickup schedule directory.
"""

from typing import Any, Dict, Optional

import structlog

from switchboard.lookups import LookupServiceError
from switchboard.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, error_result
from switchboard.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

OUTCOME_RESOLVED = "resolved"
OUTCOME_TBD = "tbd"
OUTCOME_NOT_FOUND = "not_found"


class GetPickupTimesTool(Tool):
    """
    Look up the next pickup for a location.

    Outcomes:
    - not_found: no scheduled rows for the location
    - tbd: a pickup exists but its time/place is not announced yet
    - resolved: date, time window and address are all known
    """

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_pickup_times",
            description=(
                "Get pickup dates, times and addresses for the caller's area. "
                "Pass the region (e.g. Brooklyn) or city (e.g. Lakewood) the caller mentioned."
            ),
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(
                    name="region",
                    type="string",
                    description="Region name e.g. Brooklyn",
                    nullable=True,
                ),
                ToolParameter(
                    name="city",
                    type="string",
                    description="City name e.g. Lakewood",
                    nullable=True,
                ),
            ],
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        """
        Returns:
            {
                status: "success" | "error",
                outcome: "resolved" | "tbd" | "not_found" | "error",
                has_results: bool,
                message: spoken answer,
                location, date, time_window, address: populated per outcome
            }
        """
        answers = context.answers
        raw_location = _first_present(parameters.get("city"), parameters.get("region"))
        location = context.locations.normalize(raw_location) if raw_location else None

        if not location:
            return self._result(
                OUTCOME_NOT_FOUND,
                answers.render("pickup_not_found", city="your location"),
                location=None,
            )

        try:
            events = await context.schedule.find_events(location)
        except LookupServiceError as exc:
            logger.warning(
                "Pickup lookup failed",
                call_id=context.call_id,
                location=location,
                error=str(exc),
            )
            return error_result(answers.fallback_error, "lookup_failed")

        if not events:
            logger.info("No pickups found", call_id=context.call_id, location=location)
            return self._result(
                OUTCOME_NOT_FOUND,
                answers.render("pickup_not_found", city=location),
                location=location,
            )

        event = events[0]
        city = event.city or event.region or location

        if event.is_tbd or not (event.date_spoken and event.time_window and event.address):
            logger.info("Pickup not finalized", call_id=context.call_id, location=location)
            return self._result(
                OUTCOME_TBD,
                answers.render("pickup_tbd", city=city, date_spoken=event.date_spoken),
                location=location,
                has_results=True,
                date=event.date_spoken,
            )

        logger.info(
            "Pickup found",
            call_id=context.call_id,
            location=location,
            date=event.date_spoken,
        )
        return self._result(
            OUTCOME_RESOLVED,
            answers.render(
                "pickup_success",
                city=city,
                date_spoken=event.date_spoken,
                time_window=event.time_window,
                address=event.address,
            ),
            location=location,
            has_results=True,
            date=event.date_spoken,
            time_window=event.time_window,
            address=event.address,
        )

    @staticmethod
    def _result(
        outcome: str,
        message: str,
        *,
        location: Optional[str],
        has_results: bool = False,
        date: Optional[str] = None,
        time_window: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "status": "success",
            "outcome": outcome,
            "has_results": has_results,
            "message": message,
            "location": location,
            "date": date,
            "time_window": time_window,
            "address": address,
        }


def _first_present(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None

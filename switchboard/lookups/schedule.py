"""
Pickup schedule directory.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import structlog

from switchboard.lookups.supabase import LookupServiceError, SupabaseRestClient, postgrest_quote

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PickupEvent:
    """One scheduled (or not yet scheduled) pickup."""
    region: Optional[str]
    city: Optional[str]
    date_spoken: Optional[str]
    time_window: Optional[str]
    address: Optional[str]
    is_tbd: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PickupEvent":
        return cls(
            region=row.get("region"),
            city=row.get("city"),
            date_spoken=row.get("date_spoken") or _speak_date(row.get("pickup_date")),
            time_window=row.get("time_window") or _window(row.get("start_time"), row.get("end_time")),
            address=row.get("address"),
            is_tbd=bool(row.get("is_tbd")),
        )


def _speak_date(value: Any) -> Optional[str]:
    if not value:
        return None
    try:
        d = date.fromisoformat(str(value)[:10])
    except ValueError:
        return str(value)
    return f"{d:%A}, {d:%B} {d.day}"


def _window(start: Any, end: Any) -> Optional[str]:
    if start and end:
        return f"{start} to {end}"
    return None


class ScheduleDirectory:
    """Reads upcoming pickups for a region or city."""

    def __init__(
        self,
        client: SupabaseRestClient,
        table: str = "pickup_events",
        today: Callable[[], date] = date.today,
    ):
        self._client = client
        self._table = table
        self._today = today

    async def find_events(self, location: str) -> List[PickupEvent]:
        """
        Look up pickups whose region or city matches the location.

        Past pickups are excluded. Rows without a date are kept since a
        to-be-determined pickup may not have one yet.

        Raises:
            LookupServiceError: backing service unavailable
        """
        quoted = postgrest_quote(location)
        params = {
            "select": "*",
            "or": f"(region.ilike.{quoted},city.ilike.{quoted})",
            "and": f"(or(pickup_date.gte.{self._today().isoformat()},pickup_date.is.null))",
            "order": "pickup_date.asc.nullslast",
        }
        rows = await self._client.select(self._table, params)
        logger.debug("Schedule lookup", location=location, rows=len(rows))
        return [PickupEvent.from_row(row) for row in rows]


__all__ = ["PickupEvent", "ScheduleDirectory", "LookupServiceError"]

"""
Item / kashrus catalog.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from switchboard.lookups.supabase import SupabaseRestClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CatalogItem:
    name: str
    hechsher: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CatalogItem":
        return cls(
            name=str(row.get("name") or "").strip(),
            hechsher=row.get("hechsher"),
            description=row.get("description"),
        )


def _ilike_pattern(query: str) -> str:
    # PostgREST uses * as the ilike wildcard; strip any the caller supplied
    cleaned = " ".join(query.replace("*", " ").split())
    return f"*{cleaned}*"


class ItemCatalog:
    """Free-text search over catalog item names."""

    def __init__(self, client: SupabaseRestClient, table: str = "items"):
        self._client = client
        self._table = table

    async def search(self, query: str) -> List[CatalogItem]:
        """
        Raises:
            LookupServiceError: backing service unavailable
        """
        params = {
            "select": "name,hechsher,description",
            "name": f"ilike.{_ilike_pattern(query)}",
            "order": "name.asc",
        }
        rows = await self._client.select(self._table, params)
        logger.debug("Catalog lookup", query=query, rows=len(rows))
        return [item for item in (CatalogItem.from_row(row) for row in rows) if item.name]

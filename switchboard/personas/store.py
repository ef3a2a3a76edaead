"""
Persona store - active system prompts kept in Supabase.
"""

from typing import Dict

import structlog

from switchboard.lookups.supabase import SupabaseRestClient

logger = structlog.get_logger(__name__)


class PersonaStore:
    """Reads active prompt rows (key, content) from the prompts table."""

    def __init__(self, client: SupabaseRestClient, table: str = "agent_system_prompts"):
        self._client = client
        self._table = table

    @property
    def configured(self) -> bool:
        return self._client.configured

    async def fetch_active(self) -> Dict[str, str]:
        """
        Returns:
            Mapping of store key to prompt text for active rows

        Raises:
            LookupServiceError: store unreachable or misconfigured
        """
        rows = await self._client.select(
            self._table,
            {"select": "key,content", "is_active": "eq.true"},
        )
        prompts: Dict[str, str] = {}
        for row in rows:
            key = row.get("key")
            content = row.get("content")
            if isinstance(key, str) and isinstance(content, str) and content.strip():
                prompts[key] = content.strip()
        logger.debug("Fetched persona prompts", table=self._table, keys=sorted(prompts))
        return prompts

"""
Minimal Supabase (PostgREST) reader.

Persona prompts, pickup schedules and the item catalog all live in Supabase
tables. Reads go through the REST endpoint with a bounded timeout; every
failure mode is raised as LookupServiceError so callers have a single
exception to map to a spoken fallback.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import structlog

logger = structlog.get_logger(__name__)


class LookupServiceError(RuntimeError):
    """A backing lookup failed (unconfigured, unreachable, non-2xx, timeout, bad body)."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def postgrest_quote(value: str) -> str:
    """Quote a value for use inside a PostgREST logical filter."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class SupabaseRestClient:
    """Read-only access to Supabase tables over HTTP."""

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        timeout_sec: float = 5.0,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._url = (url or "").rstrip("/")
        self._api_key = api_key
        self._timeout_sec = float(timeout_sec)
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, supabase_config) -> "SupabaseRestClient":
        return cls(supabase_config.url, supabase_config.api_key, supabase_config.timeout_sec)

    @property
    def configured(self) -> bool:
        return bool(self._url and self._api_key)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            factory = self._session_factory or aiohttp.ClientSession
            self._session = factory()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """
        GET /rest/v1/<table> with PostgREST query params.

        Returns:
            List of row dicts

        Raises:
            LookupServiceError: on any failure
        """
        if not self.configured:
            raise LookupServiceError("Supabase is not configured")

        session = await self._ensure_session()
        url = f"{self._url}/rest/v1/{table}"
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        try:
            async with session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec),
            ) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    logger.warning(
                        "Supabase lookup returned non-success status",
                        table=table,
                        status=response.status,
                        body_preview=body[:200],
                    )
                    raise LookupServiceError(
                        f"Supabase {table} lookup failed with HTTP {response.status}",
                        status=response.status,
                    )
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning("Supabase lookup timed out", table=table, timeout_sec=self._timeout_sec)
            raise LookupServiceError(f"Supabase {table} lookup timed out")
        except aiohttp.ClientError as exc:
            logger.warning("Supabase lookup connection error", table=table, error=str(exc))
            raise LookupServiceError(f"Supabase {table} lookup failed: {exc}")
        except ValueError as exc:
            logger.warning("Supabase lookup returned invalid JSON", table=table, error=str(exc))
            raise LookupServiceError(f"Supabase {table} lookup returned invalid JSON")

        if not isinstance(data, list):
            raise LookupServiceError(f"Supabase {table} lookup returned {type(data).__name__}, expected list")
        return [row for row in data if isinstance(row, dict)]

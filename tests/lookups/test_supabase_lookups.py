"""
Supabase-backed lookups against a local fake PostgREST server.
"""

import asyncio
from datetime import date

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from switchboard.answers import AnswerRenderer
from switchboard.config import FALLBACK_ERROR_TEXT
from switchboard.lookups import (
    ItemCatalog,
    LocationNormalizer,
    LookupServiceError,
    ScheduleDirectory,
    SupabaseRestClient,
)
from switchboard.tools.business.pickup_times import GetPickupTimesTool
from switchboard.tools.context import ToolExecutionContext


def fake_postgrest(routes):
    """routes: {table: handler}. Returns the app and the list of requests it received."""
    app = web.Application()
    requests = []

    def wrap(handler):
        async def recorded(request):
            requests.append(request)
            return await handler(request)
        return recorded

    for table, handler in routes.items():
        app.router.add_get(f"/rest/v1/{table}", wrap(handler))
    return app, requests


async def _rows(rows, status=200):
    return web.json_response(rows, status=status)


class TestSupabaseRestClient:

    @pytest.mark.asyncio
    async def test_select_sends_keys_and_params(self):
        async def handler(request):
            return await _rows([{"key": "agent_router", "content": "Hi"}])

        app, requests = fake_postgrest({"agent_system_prompts": handler})
        async with TestServer(app) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "service-key")
            try:
                rows = await client.select("agent_system_prompts", {"is_active": "eq.true"})
            finally:
                await client.close()

        request = requests[0]
        assert rows == [{"key": "agent_router", "content": "Hi"}]
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.query["is_active"] == "eq.true"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        async def handler(request):
            return web.json_response({"message": "boom"}, status=500)

        async with TestServer(fake_postgrest({"items": handler})[0]) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k")
            try:
                with pytest.raises(LookupServiceError) as excinfo:
                    await client.select("items", {})
            finally:
                await client.close()

        assert excinfo.value.status == 500

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        async def handler(request):
            return web.Response(text="<html>nope</html>", content_type="text/html")

        async with TestServer(fake_postgrest({"items": handler})[0]) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k")
            try:
                with pytest.raises(LookupServiceError):
                    await client.select("items", {})
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        async def handler(request):
            await asyncio.sleep(0.5)
            return await _rows([])

        async with TestServer(fake_postgrest({"items": handler})[0]) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k", timeout_sec=0.05)
            try:
                with pytest.raises(LookupServiceError, match="timed out"):
                    await client.select("items", {})
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_connection_refused_raises(self):
        client = SupabaseRestClient(f"http://127.0.0.1:{unused_port()}", "k", timeout_sec=1.0)
        try:
            with pytest.raises(LookupServiceError):
                await client.select("items", {})
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self):
        client = SupabaseRestClient(None, None)

        with pytest.raises(LookupServiceError):
            await client.select("items", {})


class TestScheduleDirectory:

    @pytest.mark.asyncio
    async def test_filters_by_region_or_city(self):
        async def handler(request):
            return await _rows([{
                "region": "Ocean County",
                "city": "Lakewood",
                "pickup_date": "2025-03-04",
                "start_time": "5pm",
                "end_time": "9pm",
                "address": "123 Main St",
                "is_tbd": False,
            }])

        app, requests = fake_postgrest({"pickup_events": handler})
        async with TestServer(app) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k")
            try:
                directory = ScheduleDirectory(client, today=lambda: date(2025, 3, 1))
                events = await directory.find_events("Lakewood")
            finally:
                await client.close()

        query = requests[0].query
        assert query["or"] == '(region.ilike."Lakewood",city.ilike."Lakewood")'
        assert query["and"] == "(or(pickup_date.gte.2025-03-01,pickup_date.is.null))"
        assert query["order"] == "pickup_date.asc.nullslast"
        assert events[0].date_spoken == "Tuesday, March 4"
        assert events[0].time_window == "5pm to 9pm"
        assert events[0].address == "123 Main St"

    @pytest.mark.asyncio
    async def test_http_500_reaches_caller_as_fallback(self):
        """Backing schedule service down: spoken fallback, has_results false."""
        async def handler(request):
            return web.json_response({"message": "internal"}, status=500)

        async with TestServer(fake_postgrest({"pickup_events": handler})[0]) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k")
            context = ToolExecutionContext(
                call_id="call-500",
                schedule=ScheduleDirectory(client),
                locations=LocationNormalizer(),
                answers=AnswerRenderer(),
            )
            try:
                result = await GetPickupTimesTool().execute({"city": "Lakewood"}, context)
            finally:
                await client.close()

        assert result["message"] == FALLBACK_ERROR_TEXT
        assert result["has_results"] is False

    @pytest.mark.asyncio
    async def test_slow_schedule_service_reaches_caller_as_fallback(self):
        async def handler(request):
            await asyncio.sleep(0.5)
            return await _rows([])

        async with TestServer(fake_postgrest({"pickup_events": handler})[0]) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k", timeout_sec=0.05)
            context = ToolExecutionContext(
                call_id="call-timeout",
                schedule=ScheduleDirectory(client),
                locations=LocationNormalizer(),
                answers=AnswerRenderer(),
            )
            try:
                result = await GetPickupTimesTool().execute({"city": "Lakewood"}, context)
            finally:
                await client.close()

        assert result["message"] == FALLBACK_ERROR_TEXT
        assert result["has_results"] is False

    @pytest.mark.asyncio
    async def test_unreachable_schedule_service_reaches_caller_as_fallback(self):
        client = SupabaseRestClient(f"http://127.0.0.1:{unused_port()}", "k", timeout_sec=1.0)
        context = ToolExecutionContext(
            call_id="call-refused",
            schedule=ScheduleDirectory(client),
            locations=LocationNormalizer(),
            answers=AnswerRenderer(),
        )
        try:
            result = await GetPickupTimesTool().execute({"city": "Lakewood"}, context)
        finally:
            await client.close()

        assert result["message"] == FALLBACK_ERROR_TEXT
        assert result["has_results"] is False


class TestItemCatalog:

    @pytest.mark.asyncio
    async def test_case_insensitive_substring(self):
        async def handler(request):
            return await _rows([
                {"name": "Cheese Pack", "hechsher": "OU-D", "description": "Assorted cheeses"},
                {"name": "", "hechsher": None, "description": None},
            ])

        app, requests = fake_postgrest({"items": handler})
        async with TestServer(app) as server:
            client = SupabaseRestClient(str(server.make_url("/")), "k")
            try:
                items = await ItemCatalog(client).search("cheese*")
            finally:
                await client.close()

        assert requests[0].query["name"] == "ilike.*cheese*"
        assert [item.name for item in items] == ["Cheese Pack"]


class TestLocationNormalizer:

    def test_builtin_alias(self):
        assert LocationNormalizer().normalize("Boro  Park") == "Brooklyn"

    def test_configured_alias(self):
        assert LocationNormalizer({"Monsey": "Rockland"}).normalize("monsey") == "Rockland"

    def test_unmatched_passthrough(self):
        assert LocationNormalizer().normalize("Baltimore") == "Baltimore"

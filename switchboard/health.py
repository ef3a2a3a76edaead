"""
Operational HTTP surface: health, Prometheus metrics, persona refresh.
"""

import hmac
from typing import Optional

import structlog
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from switchboard.config import HealthConfig
from switchboard.personas import PersonaRegistry

logger = structlog.get_logger(__name__)


class HealthServer:

    def __init__(self, config: HealthConfig, personas: PersonaRegistry, call_server=None):
        self.config = config
        self.personas = personas
        self.call_server = call_server
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/health', self._health_handler)
        app.router.add_get('/metrics', self._metrics_handler)
        app.router.add_post('/personas/refresh', self._refresh_handler)
        return app

    def _is_request_authorized(self, request: web.Request) -> bool:
        """Bearer token must equal the configured refresh token. No token configured means no access."""
        expected = (self.config.refresh_token or "").strip()
        if not expected:
            return False
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return False
        provided = auth_header[7:].strip()
        return hmac.compare_digest(provided.encode(), expected.encode())

    async def _health_handler(self, request: web.Request) -> web.Response:
        active = self.call_server.active_calls if self.call_server is not None else 0
        return web.json_response({
            "status": "healthy",
            "active_calls": active,
            "personas": self.personas.names(),
        })

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Expose Prometheus metrics."""
        data = generate_latest()
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _refresh_handler(self, request: web.Request) -> web.Response:
        """
        Reload personas from the store.

        POST /personas/refresh
        Only calls that start afterwards pick up the new instructions.
        """
        if not self._is_request_authorized(request):
            logger.warning("Unauthorized persona refresh attempt", remote=request.remote)
            return web.json_response({"success": False, "error": "unauthorized"}, status=401)

        logger.info("Persona refresh requested")
        snapshot = await self.personas.refresh()
        return web.json_response({
            "success": True,
            "personas": list(snapshot.keys()),
            "source": self.personas.sources(),
        })

    async def start(self) -> None:
        """Start aiohttp health/metrics server (defaults to 127.0.0.1:15000)."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()
        logger.info("Health endpoint started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

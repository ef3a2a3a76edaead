"""
Telephony websocket server.

Accepts Twilio Media Stream connections on the configured path and runs one
CallOrchestrator per connection. Connections on any other path are closed
before a model connection is ever attempted.
"""

import asyncio
import uuid
from typing import Callable, Dict, Optional

import structlog
from websockets.asyncio.server import serve

from switchboard.core.models import CallServices
from switchboard.core.orchestrator import CallOrchestrator
from switchboard.logging_config import set_correlation_id
from switchboard.providers.openai_realtime import RealtimeConnection
from switchboard.transport.twilio_stream import TelephonyLeg

logger = structlog.get_logger(__name__)

# RFC 6455 policy violation
CLOSE_UNEXPECTED_PATH = 1008


class CallServer:

    def __init__(
        self,
        services: CallServices,
        model_factory: Optional[Callable[[str], object]] = None,
    ):
        self.services = services
        self.config = services.config
        self._model_factory = model_factory or self._default_model_factory
        self._calls: Dict[str, CallOrchestrator] = {}
        self._server = None

    def _default_model_factory(self, call_id: str) -> RealtimeConnection:
        return RealtimeConnection(self.config.realtime, call_id=call_id)

    @property
    def active_calls(self) -> int:
        return len(self._calls)

    async def handler(self, websocket) -> None:
        telephony = TelephonyLeg(websocket)
        path = telephony.path.split("?", 1)[0]
        expected = self.config.telephony.stream_path
        if path != expected:
            logger.warning("Rejecting connection on unexpected path", path=path, expected=expected)
            await telephony.close(CLOSE_UNEXPECTED_PATH, "unexpected path")
            return

        call_id = str(uuid.uuid4())
        set_correlation_id(call_id)
        logger.info("Telephony connection accepted", call_id=call_id, path=path)

        orchestrator = CallOrchestrator(call_id, telephony, self._model_factory(call_id), self.services)
        self._calls[call_id] = orchestrator
        try:
            reason = await orchestrator.run()
            logger.info("Call finished", call_id=call_id, reason=reason)
        except Exception:
            logger.error("Call orchestrator crashed", call_id=call_id, exc_info=True)
        finally:
            self._calls.pop(call_id, None)

    async def start(self) -> None:
        host = self.config.telephony.host
        port = self.config.telephony.port
        self._server = await serve(self.handler, host, port)
        logger.info(
            "Telephony websocket listening",
            host=host,
            port=port,
            path=self.config.telephony.stream_path,
        )

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Telephony websocket stopped", calls_dropped=len(self._calls))

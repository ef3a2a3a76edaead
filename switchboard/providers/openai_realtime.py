"""
OpenAI Realtime model leg.

One RealtimeConnection per call. It only moves JSON events: the caller's
mu-law audio is appended as-is and the model's mu-law deltas are handed to
the orchestrator untouched, since Twilio and the model agree on g711_ulaw.
"""

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import structlog
import websockets
from websockets.exceptions import ConnectionClosed

from switchboard.config import RealtimeConfig

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "wss://api.openai.com/v1/realtime"


class RealtimeConnectionError(RuntimeError):
    """The model leg could not be opened or did not become ready."""


class RealtimeConnection:
    """Duplex JSON event channel to the realtime model for a single call."""

    def __init__(
        self,
        config: RealtimeConfig,
        *,
        call_id: Optional[str] = None,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.config = config
        self.call_id = call_id
        self._connect = connect
        self.websocket = None
        self.session_id: Optional[str] = None
        self._send_lock = asyncio.Lock()
        self._closing = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return bool(self.websocket) and not self._closed and self.websocket.state.name == "OPEN"

    def _build_ws_url(self) -> str:
        base = (self.config.base_url or "").strip()
        # Unresolved placeholders or a non-websocket scheme fall back to the public endpoint
        if base.startswith("${") or not base.startswith(("ws://", "wss://")):
            logger.warning("Invalid realtime base_url in config; falling back to default", base_url=base)
            base = DEFAULT_BASE_URL
        return f"{base.rstrip('/')}?model={self.config.model}"

    async def connect(self) -> None:
        """
        Open the websocket and wait for ``session.created``.

        Raises:
            RealtimeConnectionError: handshake failed or timed out
        """
        if not self.config.api_key:
            raise RealtimeConnectionError("Realtime model requires OPENAI_API_KEY")

        url = self._build_ws_url()
        headers = [
            ("Authorization", f"Bearer {self.config.api_key}"),
            ("OpenAI-Beta", "realtime=v1"),
        ]
        if self.config.organization:
            headers.append(("OpenAI-Organization", self.config.organization))

        logger.info("Connecting to OpenAI Realtime", url=url, call_id=self.call_id)
        try:
            self.websocket = await self._connect(url, additional_headers=headers)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            logger.error("Failed to connect to OpenAI Realtime", call_id=self.call_id, error=str(exc))
            raise RealtimeConnectionError(f"Could not connect to realtime model: {exc}") from exc

        # session.update sent before session.created is ignored by the server
        timeout = self.config.session_created_timeout_sec
        try:
            first_message = await asyncio.wait_for(self.websocket.recv(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Timeout waiting for session.created", call_id=self.call_id, timeout_sec=timeout)
            await self.close()
            raise RealtimeConnectionError(f"Model did not send session.created within {timeout}s")
        except ConnectionClosed as exc:
            await self.close()
            raise RealtimeConnectionError(f"Model closed during handshake: {exc}") from exc

        try:
            first_event = json.loads(first_message)
        except (TypeError, json.JSONDecodeError):
            first_event = {}

        if first_event.get("type") == "session.created":
            session_data = first_event.get("session") or {}
            self.session_id = session_data.get("id")
            logger.info(
                "Received session.created - session ready",
                call_id=self.call_id,
                session_id=self.session_id,
                model=session_data.get("model"),
            )
        elif first_event.get("type") == "error":
            await self.close()
            raise RealtimeConnectionError(f"Model rejected session: {first_event.get('error')}")
        else:
            logger.warning(
                "Unexpected first event (expected session.created)",
                call_id=self.call_id,
                event_type=first_event.get("type"),
            )

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield decoded server events until the connection closes."""
        if self.websocket is None:
            return
        try:
            async for message in self.websocket:
                if isinstance(message, bytes):
                    continue
                try:
                    event = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning("Failed to decode OpenAI Realtime payload", payload_preview=message[:64])
                    continue
                if isinstance(event, dict):
                    yield event
        except ConnectionClosed:
            logger.info("OpenAI Realtime connection closed", call_id=self.call_id)

    async def send_json(self, payload: Dict[str, Any]) -> bool:
        """Send one event; returns False when the connection is no longer open."""
        if not self.is_open:
            return False
        ptype = payload.get("type", "")
        if not ptype.startswith("input_audio_buffer."):
            logger.debug("OpenAI send", call_id=self.call_id, type=ptype)
        message = json.dumps(payload)
        try:
            async with self._send_lock:
                await self.websocket.send(message)
        except ConnectionClosed:
            logger.info("OpenAI Realtime send on closed connection", call_id=self.call_id, type=ptype)
            return False
        return True

    def build_session_update(self, instructions: str, tools: List[Dict[str, Any]]) -> Dict[str, Any]:
        session: Dict[str, Any] = {
            "modalities": list(self.config.modalities),
            "input_audio_format": self.config.input_audio_format,
            "output_audio_format": self.config.output_audio_format,
            "voice": self.config.voice,
            "instructions": instructions,
            "tools": tools,
            "tool_choice": "auto" if tools else "none",
        }
        td = self.config.turn_detection
        if td is not None:
            session["turn_detection"] = {
                "type": td.type,
                "silence_duration_ms": td.silence_duration_ms,
                "threshold": td.threshold,
                "prefix_padding_ms": td.prefix_padding_ms,
            }
        if self.config.temperature is not None:
            session["temperature"] = self.config.temperature
        return {
            "type": "session.update",
            "event_id": f"sess-{uuid.uuid4()}",
            "session": session,
        }

    async def update_session(self, instructions: str, tools: List[Dict[str, Any]]) -> bool:
        """Install instructions and tools together in one session.update."""
        return await self.send_json(self.build_session_update(instructions, tools))

    async def request_response(self, instructions: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"type": "response.create", "event_id": f"resp-{uuid.uuid4()}"}
        if instructions:
            payload["response"] = {"instructions": instructions}
        return await self.send_json(payload)

    async def send_user_text(self, text: str) -> bool:
        return await self.send_json({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        })

    async def send_function_output(self, call_id: str, result: Dict[str, Any]) -> bool:
        return await self.send_json({
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": call_id,
                "output": json.dumps(result),
            },
        })

    async def append_audio(self, payload_b64: str) -> bool:
        return await self.send_json({"type": "input_audio_buffer.append", "audio": payload_b64})

    async def close(self) -> None:
        """Close the model leg. Safe to call any number of times."""
        if self._closing or self._closed:
            return
        self._closing = True
        try:
            if self.websocket is not None and self.websocket.state.name == "OPEN":
                await self.websocket.close()
        except ConnectionClosed:
            pass
        finally:
            self._closed = True
            self._closing = False
            logger.info("OpenAI Realtime session stopped", call_id=self.call_id)

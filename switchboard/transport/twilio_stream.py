"""
Twilio Media Streams leg.

Twilio connects to us over a websocket and exchanges JSON frames:
``connected``, ``start`` (streamSid/callSid), ``media`` (base64 mu-law),
``mark`` and ``stop``. We answer with ``media`` and ``clear`` frames.
"""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from websockets.exceptions import ConnectionClosed

logger = structlog.get_logger(__name__)

EVENT_START = "start"
EVENT_MEDIA = "media"
EVENT_STOP = "stop"


@dataclass
class TelephonyFrame:
    event: str
    stream_sid: Optional[str] = None
    call_sid: Optional[str] = None
    payload: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_frame(message: Any) -> Optional[TelephonyFrame]:
    """Decode one inbound frame; None for anything that is not a usable JSON event."""
    if isinstance(message, bytes):
        try:
            message = message.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        data = json.loads(message)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        return None

    event = data["event"]
    stream_sid = data.get("streamSid")
    call_sid = None
    payload = None
    if event == EVENT_START:
        start = data.get("start") or {}
        stream_sid = start.get("streamSid") or stream_sid
        call_sid = start.get("callSid")
    elif event == EVENT_MEDIA:
        payload = (data.get("media") or {}).get("payload")
        if not isinstance(payload, str):
            return None
    return TelephonyFrame(event=event, stream_sid=stream_sid, call_sid=call_sid, payload=payload, raw=data)


class TelephonyLeg:
    """Wraps the accepted Twilio websocket."""

    def __init__(self, websocket):
        self.websocket = websocket
        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None
        self._closed = False

    @property
    def path(self) -> str:
        request = getattr(self.websocket, "request", None)
        return getattr(request, "path", "") or ""

    @property
    def closed(self) -> bool:
        return self._closed

    async def frames(self) -> AsyncIterator[TelephonyFrame]:
        """Yield parsed frames until the socket closes. Malformed frames are skipped."""
        try:
            async for message in self.websocket:
                frame = parse_frame(message)
                if frame is None:
                    logger.debug("Ignoring malformed telephony frame")
                    continue
                if frame.event == EVENT_START:
                    self.stream_sid = frame.stream_sid
                    self.call_sid = frame.call_sid
                yield frame
        except ConnectionClosed:
            logger.info("Telephony connection closed", call_sid=self.call_sid)

    async def _send(self, payload: Dict[str, Any]) -> bool:
        if self._closed:
            return False
        try:
            await self.websocket.send(json.dumps(payload))
        except ConnectionClosed:
            return False
        return True

    async def send_audio(self, payload_b64: str) -> bool:
        if not self.stream_sid:
            return False
        return await self._send({
            "event": "media",
            "streamSid": self.stream_sid,
            "media": {"payload": payload_b64},
        })

    async def send_clear(self) -> bool:
        """Flush audio Twilio has queued for playback."""
        if not self.stream_sid:
            return False
        return await self._send({"event": "clear", "streamSid": self.stream_sid})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the telephony leg. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.websocket.close(code, reason)
        except ConnectionClosed:
            pass

"""
Shared fixtures and fake call legs.

The fakes record what the orchestrator sends so tests can assert on the
exact sequence of model/telephony messages without any network.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from switchboard.answers import AnswerRenderer
from switchboard.config import AppConfig
from switchboard.core.models import CallServices
from switchboard.lookups import LocationNormalizer
from switchboard.personas import PersonaRegistry
from switchboard.providers.openai_realtime import RealtimeConnectionError
from switchboard.tools import CapabilityDispatcher, build_default_registry
from switchboard.tools.context import ToolExecutionContext
from switchboard.transport.twilio_stream import parse_frame


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll until predicate() is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


class FakeModel:
    """Stands in for RealtimeConnection."""

    def __init__(self, *, fail_connect: bool = False, connect_gate: Optional[asyncio.Event] = None):
        self.fail_connect = fail_connect
        self.connect_gate = connect_gate
        self.connect_calls = 0
        self.sent: List[Dict[str, Any]] = []
        self.close_calls = 0
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def connect(self):
        self.connect_calls += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.fail_connect:
            raise RealtimeConnectionError("handshake refused")

    async def events(self):
        while True:
            event = await self._inbound.get()
            if event is None:
                return
            yield event

    def push(self, event: Optional[Dict[str, Any]]):
        self._inbound.put_nowait(event)

    async def _record(self, payload: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        self.sent.append(payload)
        return True

    async def update_session(self, instructions, tools):
        return await self._record({
            "type": "session.update",
            "instructions": instructions,
            "tools": [t["name"] for t in tools],
        })

    async def request_response(self, instructions=None):
        return await self._record({"type": "response.create", "instructions": instructions})

    async def send_user_text(self, text):
        return await self._record({"type": "user_text", "text": text})

    async def send_function_output(self, call_id, result):
        return await self._record({"type": "function_call_output", "call_id": call_id, "result": result})

    async def append_audio(self, payload_b64):
        return await self._record({"type": "input_audio_buffer.append", "audio": payload_b64})

    async def close(self):
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(None)

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["type"] == event_type]


class FakeTelephony:
    """Stands in for TelephonyLeg."""

    def __init__(self, path: str = "/twilio-stream"):
        self.path = path
        self.stream_sid = None
        self.sent: List[Dict[str, Any]] = []
        self.close_calls = 0
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def frames(self):
        while True:
            message = await self._inbound.get()
            if message is None:
                return
            frame = parse_frame(message)
            if frame is None:
                continue
            if frame.event == "start":
                self.stream_sid = frame.stream_sid
            yield frame

    def push(self, frame: Any):
        self._inbound.put_nowait(frame if isinstance(frame, str) or frame is None else json.dumps(frame))

    def start(self, call_sid: str = "CA123", stream_sid: str = "MZ123"):
        self.push({"event": "start", "start": {"streamSid": stream_sid, "callSid": call_sid}})

    def media(self, payload: str = "AAAA"):
        self.push({"event": "media", "media": {"payload": payload}})

    async def send_audio(self, payload_b64):
        self.sent.append({"event": "media", "payload": payload_b64})
        return True

    async def send_clear(self):
        self.sent.append({"event": "clear"})
        return True

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(None)


@pytest.fixture
def app_config():
    config = AppConfig()
    config.realtime.api_key = "sk-test"
    config.handoff.replay_delay_sec = 0.05
    return config


@pytest.fixture
def answers():
    return AnswerRenderer()


@pytest.fixture
def tool_registry():
    return build_default_registry()


@pytest.fixture
def schedule():
    directory = AsyncMock()
    directory.find_events = AsyncMock(return_value=[])
    return directory


@pytest.fixture
def catalog():
    items = AsyncMock()
    items.search = AsyncMock(return_value=[])
    return items


@pytest.fixture
def persona_registry(app_config, tool_registry):
    return PersonaRegistry(app_config.personas, catalog=tool_registry.names(), default=app_config.default_persona)


@pytest.fixture
def services(app_config, answers, tool_registry, persona_registry, schedule, catalog):
    return CallServices(
        config=app_config,
        personas=persona_registry,
        tools=tool_registry,
        dispatcher=CapabilityDispatcher(tool_registry, answers),
        answers=answers,
        locations=LocationNormalizer(app_config.locations.synonyms),
        schedule=schedule,
        catalog=catalog,
    )


@pytest.fixture
def tool_context(answers, schedule, catalog):
    return ToolExecutionContext(
        call_id="call-test",
        persona="pickup",
        schedule=schedule,
        catalog=catalog,
        locations=LocationNormalizer(),
        answers=answers,
    )

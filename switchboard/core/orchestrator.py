"""
Call session orchestrator.

One orchestrator per call. Two reader tasks (telephony frames, model events)
and the tool/replay tasks all post onto one asyncio.Queue; ``run`` consumes
that queue sequentially, so every piece of per-call state is only ever
touched from a single place.

Lifecycle: CONNECTING -> CONFIGURING -> ACTIVE -> CLOSING -> CLOSED.
"""

import asyncio
import contextlib
import time
from typing import Any, Dict, Optional, Set, Tuple

import structlog

from switchboard import metrics
from switchboard.core.audio_gate import POLICY_PASSTHROUGH, AudioGate
from switchboard.core.handoff import HandoffController
from switchboard.core.models import CallServices, CallSession, CallState
from switchboard.logging_config import set_correlation_id
from switchboard.providers.openai_realtime import RealtimeConnectionError
from switchboard.tools.context import ToolExecutionContext
from switchboard.transport.twilio_stream import EVENT_MEDIA, EVENT_START, EVENT_STOP, TelephonyFrame

logger = structlog.get_logger(__name__)

# Model errors caused by overlapping triggers; the call carries on
BENIGN_ERROR_CODES = frozenset({
    "conversation_already_has_active_response",
    "response_cancel_not_active",
})

AUDIO_DELTA_EVENTS = ("response.audio.delta", "response.output_audio.delta")

_TELEPHONY = "telephony"
_TELEPHONY_CLOSED = "telephony_closed"
_MODEL = "model"
_MODEL_CLOSED = "model_closed"
_TOOL_RESULT = "tool_result"
_REPLAY = "replay"


class CallOrchestrator:

    def __init__(self, call_id: str, telephony, model, services: CallServices):
        self.telephony = telephony
        self.model = model
        self.services = services
        self.config = services.config
        self.session = CallSession(call_id=call_id)
        self.gate = AudioGate(self.config.audio_gate.policy, call_id=call_id)
        self.handoff = HandoffController(
            self.session,
            model,
            services.personas,
            services.tools,
            self.config.handoff,
            request_response=self.request_response,
            post_replay=lambda generation: self._post(_REPLAY, generation),
        )
        self._queue: asyncio.Queue = asyncio.Queue()
        self._telephony_task: Optional[asyncio.Task] = None
        self._model_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self.close_reason: Optional[str] = None
        self._log = logger.bind(call_id=call_id)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def run(self) -> str:
        """Drive the call until either leg ends. Returns the close reason."""
        metrics.ACTIVE_CALLS.inc()
        reason = "internal_error"
        try:
            self._telephony_task = asyncio.create_task(self._pump_telephony())

            try:
                await self.model.connect()
            except RealtimeConnectionError as exc:
                self._log.error("Model connection failed, ending call", error=str(exc))
                reason = "model_connect_failed"
                return reason

            self.session.state = CallState.CONFIGURING
            default = self.services.personas.get(self.services.personas.default_name)
            if not await self.handoff.install(default):
                reason = "model_closed"
                return reason
            self.session.model_ready = True
            self._model_task = asyncio.create_task(self._pump_model())

            await self._maybe_greet()
            reason = await self._event_loop()
            return reason
        finally:
            await self._shutdown(reason)
            metrics.ACTIVE_CALLS.dec()

    async def _event_loop(self) -> str:
        while True:
            source, payload = await self._queue.get()
            if source == _TELEPHONY:
                reason = await self._on_telephony(payload)
            elif source == _MODEL:
                reason = await self._on_model_event(payload)
            elif source == _TOOL_RESULT:
                reason = await self._on_tool_result(*payload)
            elif source == _REPLAY:
                await self.handoff.replay(payload)
                reason = None
            elif source == _TELEPHONY_CLOSED:
                reason = "telephony_closed"
            elif source == _MODEL_CLOSED:
                reason = "model_closed"
            else:
                reason = None
            if reason:
                return reason

    async def _shutdown(self, reason: str) -> None:
        session = self.session
        if session.state == CallState.CLOSED:
            return
        session.state = CallState.CLOSING
        self.close_reason = reason
        self._log.info("Closing call", reason=reason, persona=self._persona_name())

        await self.handoff.aclose()
        tasks = [t for t in (self._telephony_task, self._model_task, *self._tool_tasks) if t is not None]
        current = asyncio.current_task()
        for task in tasks:
            if task is not current and not task.done():
                task.cancel()
        for task in tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tool_tasks.clear()

        await self.model.close()
        await self.telephony.close()

        self.gate.reset()
        session.release()
        session.state = CallState.CLOSED
        metrics.SESSIONS_CLOSED.labels(reason=reason).inc()
        self._log.info(
            "Call closed",
            reason=reason,
            frames_forwarded=self.gate.total_forwarded,
            frames_dropped=self.gate.total_dropped,
            duration_sec=round(time.time() - session.created_at, 1),
        )

    def _post(self, source: str, payload: Any = None) -> None:
        self._queue.put_nowait((source, payload))

    async def _pump_telephony(self) -> None:
        try:
            async for frame in self.telephony.frames():
                self._post(_TELEPHONY, frame)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._log.error("Telephony receive loop error", exc_info=True)
        finally:
            self._post(_TELEPHONY_CLOSED)

    async def _pump_model(self) -> None:
        try:
            async for event in self.model.events():
                self._post(_MODEL, event)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._log.error("Model receive loop error", exc_info=True)
        finally:
            self._post(_MODEL_CLOSED)

    def _persona_name(self) -> Optional[str]:
        persona = self.session.active_persona
        return persona.name if persona else None

    # ------------------------------------------------------------------ #
    # Greeting and responses
    # ------------------------------------------------------------------ #

    async def _maybe_greet(self) -> None:
        session = self.session
        if session.greeted or not (session.telephony_ready and session.model_ready):
            return
        session.greeted = True
        session.state = CallState.ACTIVE
        persona = session.active_persona
        instructions = self.config.greeting.instructions
        if persona is not None:
            instructions = f"{persona.instructions}\n\n{instructions}"
        self._log.info("Greeting caller", persona=self._persona_name())
        await self.request_response(instructions)

    async def request_response(self, instructions: Optional[str] = None) -> bool:
        """Ask for a response now, or once the active response is done."""
        session = self.session
        if session.closed:
            return False
        if session.response_active:
            session.deferred_response = True
            session.deferred_instructions = instructions
            self._log.debug("Response requested while one is active, deferring")
            return True
        session.response_active = True
        return await self.model.request_response(instructions)

    # ------------------------------------------------------------------ #
    # Telephony leg
    # ------------------------------------------------------------------ #

    async def _on_telephony(self, frame: TelephonyFrame) -> Optional[str]:
        session = self.session
        if frame.event == EVENT_MEDIA:
            # Audio before the model is configured has nowhere to go
            if session.model_ready and frame.payload and self.gate.admit():
                await self.model.append_audio(frame.payload)
            return None

        if frame.event == EVENT_START:
            session.telephony_ready = True
            session.stream_sid = frame.stream_sid
            session.call_sid = frame.call_sid
            if frame.call_sid:
                set_correlation_id(frame.call_sid)
                self._log = self._log.bind(call_sid=frame.call_sid)
            self._log.info("Media stream started", stream_sid=frame.stream_sid)
            await self._maybe_greet()
            return None

        if frame.event == EVENT_STOP:
            self._log.info("Media stream stopped")
            return "telephony_stop"

        return None

    # ------------------------------------------------------------------ #
    # Model leg
    # ------------------------------------------------------------------ #

    async def _on_model_event(self, event: Dict[str, Any]) -> Optional[str]:
        event_type = event.get("type")
        session = self.session

        if event_type in AUDIO_DELTA_EVENTS:
            delta = event.get("delta")
            if delta:
                self.gate.on_audio_output()
                await self.telephony.send_audio(delta)
            return None

        if event_type == "response.created":
            session.response_active = True
            return None

        if event_type == "response.done":
            self.gate.on_response_done()
            session.response_active = False
            for item in (event.get("response") or {}).get("output") or []:
                if isinstance(item, dict) and item.get("type") == "function_call":
                    self._dispatch_tool(item.get("call_id"), item.get("name"), item.get("arguments"))
            if session.deferred_response:
                instructions = session.deferred_instructions
                session.deferred_response = False
                session.deferred_instructions = None
                await self.request_response(instructions)
            return None

        if event_type == "response.function_call_arguments.delta":
            call_id = event.get("call_id")
            if call_id:
                session.pending_arguments[call_id] = session.pending_arguments.get(call_id, "") + (event.get("delta") or "")
            return None

        if event_type == "response.function_call_arguments.done":
            call_id = event.get("call_id")
            arguments = event.get("arguments")
            if arguments is None and call_id:
                arguments = session.pending_arguments.get(call_id)
            if event.get("name"):
                self._dispatch_tool(call_id, event.get("name"), arguments)
            return None

        if event_type == "response.output_item.done":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                self._dispatch_tool(item.get("call_id"), item.get("name"), item.get("arguments"))
            return None

        if event_type == "input_audio_buffer.speech_started":
            if self.gate.policy == POLICY_PASSTHROUGH and self.gate.speaking:
                self._log.debug("Caller barge-in, clearing queued audio")
                await self.telephony.send_clear()
            return None

        if event_type == "error":
            error = event.get("error") or {}
            code = error.get("code")
            if code in BENIGN_ERROR_CODES:
                self._log.debug("Ignoring benign model error", code=code, message=error.get("message"))
                return None
            self._log.error("Model error event", code=code, message=error.get("message"), error_event=event)
            return "model_error"

        return None

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #

    def _dispatch_tool(self, call_id: Optional[str], name: Optional[str], arguments: Any) -> None:
        session = self.session
        if not call_id or not name or session.closed:
            return
        if call_id in session.seen_tool_calls:
            return
        session.seen_tool_calls.add(call_id)
        if arguments is None:
            arguments = session.pending_arguments.get(call_id)
        session.pending_arguments.pop(call_id, None)

        persona = session.active_persona
        context = ToolExecutionContext(
            call_id=session.call_id,
            persona=persona.name if persona else None,
            schedule=self.services.schedule,
            catalog=self.services.catalog,
            locations=self.services.locations,
            answers=self.services.answers,
        )
        allowed = persona.tools if persona else ()
        task = asyncio.create_task(
            self._run_tool(call_id, name, arguments, context, allowed, session.persona_generation)
        )
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool(
        self,
        call_id: str,
        name: str,
        arguments: Any,
        context: ToolExecutionContext,
        allowed: Tuple[str, ...],
        generation: int,
    ) -> None:
        result = await self.services.dispatcher.invoke(name, arguments, context, allowed_tools=allowed)
        if self.session.closed:
            self._log.debug("Discarding tool result for closed call", tool=name)
            return
        self._post(_TOOL_RESULT, (call_id, name, generation, result))

    async def _on_tool_result(
        self,
        call_id: str,
        name: str,
        generation: int,
        result: Dict[str, Any],
    ) -> Optional[str]:
        if self.session.closed:
            return None
        if not await self.model.send_function_output(call_id, result):
            return "model_closed"

        handoff = result.get("handoff")
        if handoff and generation == self.session.persona_generation:
            await self.handoff.switch_to(handoff.get("target"), handoff.get("carried_context"))
            return None
        if handoff:
            self._log.info("Ignoring hand-off from superseded persona", tool=name, target=handoff.get("target"))

        await self.request_response(None)
        return None

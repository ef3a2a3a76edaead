"""
Hand-off controller: swaps the active persona on a live call.

A switch replaces the session's persona reference and pushes the new
instructions and tools in a single ``session.update``. If the caller's
question was carried over, it is replayed into the new persona's context
after ``replay_delay_sec`` so the spoken acknowledgment is not cut off.

Each switch bumps ``session.persona_generation``. A replay remembers the
generation it was scheduled for and is discarded if another switch happened
in the meantime, so with two quick hand-offs only the newer one's question
is replayed.
"""

import asyncio
import contextlib
from typing import Awaitable, Callable, Optional

import structlog

from switchboard import metrics
from switchboard.config import HandoffConfig
from switchboard.core.models import CallSession
from switchboard.personas import Persona, PersonaRegistry
from switchboard.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)

RequestResponse = Callable[[Optional[str]], Awaitable[bool]]


class HandoffController:

    def __init__(
        self,
        session: CallSession,
        model,
        personas: PersonaRegistry,
        tools: ToolRegistry,
        config: HandoffConfig,
        request_response: RequestResponse,
        post_replay: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            session: The call being controlled
            model: Model leg (update_session / send_user_text)
            personas: Persona registry for target lookup
            tools: Capability catalog used to build tool schemas
            config: Hand-off settings
            request_response: Asks the model for a response, honouring any active one
            post_replay: When set, a due replay is handed to this callback (the
                orchestrator's queue) instead of being run from the timer task
        """
        self.session = session
        self.model = model
        self.personas = personas
        self.tools = tools
        self.config = config
        self._request_response = request_response
        self._post_replay = post_replay
        self._replay_task: Optional[asyncio.Task] = None

    async def install(self, persona: Persona) -> bool:
        """Bind a persona to the session and push it upstream as one update."""
        self.session.active_persona = persona
        schemas = self.tools.to_openai_realtime_schema(persona.tools)
        sent = await self.model.update_session(persona.instructions, schemas)
        logger.info(
            "Persona installed",
            call_id=self.session.call_id,
            persona=persona.name,
            generation=self.session.persona_generation,
            tools=list(persona.tools),
        )
        return sent

    async def switch_to(self, name: str, carried_context: Optional[str] = None) -> Persona:
        """
        Switch the call to another persona.

        Args:
            name: Target persona name (unknown names resolve to the default persona)
            carried_context: The caller's unresolved question, replayed to the target

        Returns:
            The persona now active
        """
        session = self.session
        persona = self.personas.get(name)
        returning = persona.name == self.personas.default_name

        self.cancel()
        session.persona_generation += 1
        generation = session.persona_generation
        session.pending_context = None if returning else (carried_context or None)

        previous = session.active_persona.name if session.active_persona else None
        await self.install(persona)
        metrics.HANDOFFS.labels(target=persona.name).inc()
        logger.info(
            "Hand-off complete",
            call_id=session.call_id,
            source=previous,
            target=persona.name,
            generation=generation,
            carries_context=session.pending_context is not None,
        )

        if returning:
            await self._request_response(self.config.returning_caller_instructions)
        else:
            await self._request_response(None)
            if session.pending_context:
                self._replay_task = asyncio.create_task(self._replay_after_delay(generation))
        return persona

    async def _replay_after_delay(self, generation: int) -> None:
        await asyncio.sleep(self.config.replay_delay_sec)
        if self._post_replay is not None:
            self._post_replay(generation)
        else:
            await self.replay(generation)

    async def replay(self, generation: int) -> bool:
        """
        Inject the carried question into the conversation if still current.

        Returns:
            True if the question was sent, False if the replay was stale
        """
        session = self.session
        persona = session.active_persona
        if (
            session.closed
            or persona is None
            or generation != session.persona_generation
            or not session.pending_context
        ):
            logger.debug(
                "Discarding stale hand-off replay",
                call_id=session.call_id,
                generation=generation,
                current_generation=session.persona_generation,
            )
            return False

        text = session.pending_context
        session.pending_context = None
        logger.info("Replaying caller question", call_id=session.call_id, persona=persona.name)
        if not await self.model.send_user_text(text):
            return False
        await self._request_response(None)
        return True

    def cancel(self) -> None:
        """Cancel a pending replay timer, if any."""
        task, self._replay_task = self._replay_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def aclose(self) -> None:
        task, self._replay_task = self._replay_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

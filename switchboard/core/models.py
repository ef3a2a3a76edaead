"""
Per-call state and the shared services a call is wired to.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

from switchboard.personas.models import Persona


class CallState(Enum):
    CONNECTING = "connecting"    # telephony accepted, model leg opening
    CONFIGURING = "configuring"  # model open, default persona pushed, no greeting yet
    ACTIVE = "active"            # greeted; relaying, tools and hand-offs
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class CallSession:
    """Complete state for one call. Owned by exactly one orchestrator."""
    call_id: str
    active_persona: Optional[Persona] = None
    state: CallState = CallState.CONNECTING

    # Bumped on every persona switch; stale hand-off replays compare against it
    persona_generation: int = 0
    pending_context: Optional[str] = None

    # Greeting gate
    greeted: bool = False
    telephony_ready: bool = False
    model_ready: bool = False

    # Response bookkeeping: a response.create while one is active is held until response.done
    response_active: bool = False
    deferred_response: bool = False
    deferred_instructions: Optional[str] = None

    # Telephony identifiers
    stream_sid: Optional[str] = None
    call_sid: Optional[str] = None

    # Tool calls already dispatched, keyed by model call_id
    seen_tool_calls: Set[str] = field(default_factory=set)
    pending_arguments: Dict[str, str] = field(default_factory=dict)

    created_at: float = field(default_factory=time.time)

    @property
    def closed(self) -> bool:
        return self.state in (CallState.CLOSING, CallState.CLOSED)

    def release(self) -> None:
        """Drop every per-call reference once both legs are closed."""
        self.active_persona = None
        self.pending_context = None
        self.deferred_response = False
        self.deferred_instructions = None
        self.seen_tool_calls.clear()
        self.pending_arguments.clear()


@dataclass
class CallServices:
    """Process-wide collaborators shared (read-only) by every call."""
    config: Any              # AppConfig
    personas: Any            # PersonaRegistry
    tools: Any               # ToolRegistry
    dispatcher: Any          # CapabilityDispatcher
    answers: Any             # AnswerRenderer
    locations: Any           # LocationNormalizer
    schedule: Any = None     # ScheduleDirectory
    catalog: Any = None      # ItemCatalog

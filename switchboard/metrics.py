"""
Prometheus metrics for the switchboard service.
"""

from prometheus_client import Counter, Gauge

ACTIVE_CALLS = Gauge(
    "switchboard_active_calls",
    "Number of call sessions currently being orchestrated",
)
HANDOFFS = Counter(
    "switchboard_handoffs_total",
    "Persona hand-offs performed",
    labelnames=("target",),
)
TOOL_INVOCATIONS = Counter(
    "switchboard_tool_invocations_total",
    "Tool invocations by tool and outcome",
    labelnames=("tool", "outcome"),
)
DROPPED_FRAMES = Counter(
    "switchboard_dropped_inbound_frames_total",
    "Inbound caller audio frames dropped while the assistant was speaking",
)
SESSIONS_CLOSED = Counter(
    "switchboard_sessions_closed_total",
    "Call sessions closed, by reason",
    labelnames=("reason",),
)
PERSONA_REFRESHES = Counter(
    "switchboard_persona_refreshes_total",
    "Persona registry loads, by source",
    labelnames=("source",),
)

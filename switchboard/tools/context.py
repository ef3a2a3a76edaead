"""
Tool execution context - what a tool may touch while it runs.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ToolExecutionContext:
    """
    Context provided to tools during execution.

    Carries the call identity plus the shared, read-only lookup services.
    Tools never mutate the call session; hand-offs are returned as directives
    for the orchestrator to apply.
    """

    # Call information
    call_id: str
    persona: Optional[str] = None

    # Lookup services (shared across calls)
    schedule: Any = None     # ScheduleDirectory
    catalog: Any = None      # ItemCatalog
    locations: Any = None    # LocationNormalizer
    answers: Any = None      # AnswerRenderer

"""
Audio gate: keeps the caller's audio away from the model while the
assistant is talking.

The speaking flag is set by the first audio delta of a response and cleared
only by ``response.done``; silence in the audio stream never clears it.
Under the ``drop`` policy inbound frames are discarded while the flag is
set (no buffering). Under ``passthrough`` every frame is forwarded and the
model's own turn detection decides on interruptions.
"""

import structlog

from switchboard import metrics

logger = structlog.get_logger(__name__)

POLICY_DROP = "drop"
POLICY_PASSTHROUGH = "passthrough"


class AudioGate:

    def __init__(self, policy: str = POLICY_DROP, call_id: str = ""):
        if policy not in (POLICY_DROP, POLICY_PASSTHROUGH):
            raise ValueError(f"Unknown audio gate policy: {policy}")
        self.policy = policy
        self.call_id = call_id
        self.speaking = False
        self.total_dropped = 0
        self.total_forwarded = 0

    def on_audio_output(self) -> bool:
        """Model produced audio. Returns True if this started a speaking burst."""
        if self.speaking:
            return False
        self.speaking = True
        logger.debug("Assistant speaking, gate closed", call_id=self.call_id, policy=self.policy)
        return True

    def on_response_done(self) -> None:
        if self.speaking:
            logger.debug(
                "Assistant finished, gate open",
                call_id=self.call_id,
                dropped=self.total_dropped,
            )
        self.speaking = False

    def admit(self) -> bool:
        """Decide whether one inbound caller frame goes upstream."""
        if self.speaking and self.policy == POLICY_DROP:
            self.total_dropped += 1
            metrics.DROPPED_FRAMES.inc()
            return False
        self.total_forwarded += 1
        return True

    def reset(self) -> None:
        self.speaking = False

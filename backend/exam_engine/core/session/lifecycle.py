"""
Session lifecycle state machine.

    ACTIVE --begin_submission--> SUBMITTING --finalize--> FINALIZED
      |                             |
      |                             +--abort_submission--> ACTIVE
      +--expire--> EXPIRED

Only ACTIVE may begin a submission, so a timer-triggered and a user-triggered
submission can never both run. Disallowed transitions are no-ops that return
False, which is how late events are ignored.
"""
import logging
from typing import Dict, FrozenSet

from exam_engine.models.models import SessionPhase

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.ACTIVE: frozenset({SessionPhase.SUBMITTING, SessionPhase.EXPIRED}),
    SessionPhase.SUBMITTING: frozenset({SessionPhase.FINALIZED, SessionPhase.ACTIVE}),
    SessionPhase.FINALIZED: frozenset(),
    SessionPhase.EXPIRED: frozenset(),
}


class SessionLifecycle:
    """Tracks and guards the phase of one live session."""

    def __init__(self, phase: SessionPhase = SessionPhase.ACTIVE):
        self.phase = phase

    @property
    def is_active(self) -> bool:
        return self.phase == SessionPhase.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.phase]

    def transition(self, target: SessionPhase) -> bool:
        """Move to ``target`` if allowed. Returns whether the move happened."""
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            logger.debug(f"Ignoring transition {self.phase.value} -> {target.value}")
            return False
        self.phase = target
        return True

    def begin_submission(self) -> bool:
        return self.transition(SessionPhase.SUBMITTING)

    def abort_submission(self) -> bool:
        return self.transition(SessionPhase.ACTIVE)

    def finalize(self) -> bool:
        return self.transition(SessionPhase.FINALIZED)

    def expire(self) -> bool:
        return self.transition(SessionPhase.EXPIRED)

"""
Session timing and resumption.

``resolve_timing`` decides, from the persisted start time alone, whether a
session resumes, restarts after expiry, or starts fresh. It is pure so every
branch can be tested with fixed timestamps. ``SessionTimerManager`` wraps it
with the store reads and writes.

Remaining time is never stored. It is always derived as

    remaining = duration * 60 - floor(now - started_at)

A persisted session with ``RESUME_FORGIVENESS_SECONDS`` (30) or less left is
treated as expired and restarted with the full duration.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from exam_engine.core.datetime_utils import elapsed_whole_seconds, utc_now
from exam_engine.schemas.sessions import SessionTimerState
from exam_engine.store import paths
from exam_engine.store.base import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_FORGIVENESS_SECONDS = 30


class TimingAction(str, enum.Enum):
    """How a session's clock was established."""

    FRESH = "fresh"
    RESUME = "resume"
    EXPIRED_RESTART = "expired_restart"
    FORCED_RESTART = "forced_restart"


@dataclass(frozen=True)
class TimingDecision:
    """Result of resolving a session's timing on entry."""

    action: TimingAction
    started_at: datetime
    remaining_seconds: int

    @property
    def is_resume(self) -> bool:
        return self.action == TimingAction.RESUME


def remaining_seconds(started_at: datetime, duration_minutes: int, now: datetime) -> int:
    """Seconds left on a session started at ``started_at`` (never negative)."""
    total = duration_minutes * 60
    return max(0, total - elapsed_whole_seconds(started_at, now))


def resolve_timing(
    now: datetime,
    persisted_started_at: Optional[datetime],
    duration_minutes: int,
    force_restart: bool,
    forgiveness_seconds: int = DEFAULT_FORGIVENESS_SECONDS,
) -> TimingDecision:
    """
    Decide how a session's clock starts.

    Args:
        now: Current time.
        persisted_started_at: Start time stored by an earlier entry, if any.
        duration_minutes: Test duration.
        force_restart: Whether the caller asked to discard prior progress.
        forgiveness_seconds: Remaining-time floor for resuming.

    Returns:
        TimingDecision. Every action except RESUME starts a new clock at
        ``now`` with the full duration.
    """
    full = duration_minutes * 60

    if force_restart:
        return TimingDecision(TimingAction.FORCED_RESTART, now, full)

    if persisted_started_at is not None:
        remaining = remaining_seconds(persisted_started_at, duration_minutes, now)
        if remaining > forgiveness_seconds:
            return TimingDecision(TimingAction.RESUME, persisted_started_at, remaining)
        return TimingDecision(TimingAction.EXPIRED_RESTART, now, full)

    return TimingDecision(TimingAction.FRESH, now, full)


class SessionTimerManager:
    """Persists session start times and clears stale session data."""

    def __init__(
        self,
        store: DocumentStore,
        forgiveness_seconds: int = DEFAULT_FORGIVENESS_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.forgiveness_seconds = forgiveness_seconds
        self.clock = clock

    async def load_started_at(self, user_id: str, test_id: str) -> Optional[datetime]:
        raw = await self.store.get(paths.timer_state(user_id, test_id))
        if not raw:
            return None
        try:
            return SessionTimerState.model_validate(raw).started_at
        except ValidationError:
            logger.warning(
                f"Discarding unreadable timer state for user {user_id} on test {test_id}"
            )
            return None

    async def resolve(
        self,
        user_id: str,
        test_id: str,
        duration_minutes: int,
        force_restart: bool = False,
    ) -> TimingDecision:
        """
        Resolve timing for an entry into the session and persist the outcome.

        A forced restart discards the prior response and all session data.
        An expiry restart discards the stale session data. The start time is
        written only when a new clock starts, never on resume.
        """
        persisted = None
        if not force_restart:
            persisted = await self.load_started_at(user_id, test_id)

        decision = resolve_timing(
            self.clock(),
            persisted,
            duration_minutes,
            force_restart,
            self.forgiveness_seconds,
        )

        if decision.action == TimingAction.FORCED_RESTART:
            await self.store.set(paths.response(test_id, user_id), None)
            await self.clear_session_data(user_id, test_id)
        elif decision.action == TimingAction.EXPIRED_RESTART:
            logger.info(
                f"Session for user {user_id} on test {test_id} expired while away, "
                "starting fresh"
            )
            await self.clear_session_data(user_id, test_id)

        if not decision.is_resume:
            timer = SessionTimerState(started_at=decision.started_at)
            await self.store.set(
                paths.timer_state(user_id, test_id), timer.model_dump(mode="json")
            )

        logger.info(
            f"Timing for user {user_id} on test {test_id}: {decision.action.value}, "
            f"{decision.remaining_seconds}s remaining"
        )
        return decision

    async def clear_session_data(self, user_id: str, test_id: str) -> None:
        """Delete the timer, progress and adaptive state of a session."""
        await self.store.set(paths.timer_state(user_id, test_id), None)
        await self.store.set(paths.session_progress(user_id, test_id), None)
        await self.store.set(paths.adaptive_state(user_id, test_id), None)

"""
Adaptive difficulty engine.

Owns the persisted AdaptiveSessionState for each (user, test) pair. The
transition logic itself lives in ``difficulty.apply_answer``; this class
loads state, applies answers, and writes the result back. It keeps no state
of its own between calls, so any number of sessions can share one engine.

Usage:
    engine = AdaptiveDifficultyEngine(store)
    state = await engine.resume(user_id, test_id)
    if state is None:
        state = await engine.initialize(user_id, test_id)

    state = await engine.record_answer(user_id, test_id, "q1", is_correct=True)
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from exam_engine.core.datetime_utils import utc_now
from exam_engine.core.adaptive.difficulty import (
    DifficultyPolicy,
    apply_answer,
    difficulty_from_average,
)
from exam_engine.core.exceptions import PersistenceError, StateNotFoundError
from exam_engine.models.models import DifficultyLevel
from exam_engine.schemas.sessions import AdaptiveSessionState
from exam_engine.store import paths
from exam_engine.store.base import ABORT, DocumentStore

logger = logging.getLogger(__name__)


def _parse_state(raw: Any) -> Optional[AdaptiveSessionState]:
    if not raw:
        return None
    try:
        return AdaptiveSessionState.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring unreadable adaptive state: {e.error_count()} error(s)")
        return None


class AdaptiveDifficultyEngine:
    """Loads, transitions and persists adaptive session state."""

    def __init__(
        self,
        store: DocumentStore,
        policy: Optional[DifficultyPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.policy = policy or DifficultyPolicy()
        self.clock = clock

    async def initialize(self, user_id: str, test_id: str) -> AdaptiveSessionState:
        """
        Create and persist a fresh adaptive state.

        The starting difficulty comes from the user's recent completed
        sessions (see ``initial_difficulty``).

        Args:
            user_id: Test-taker ID.
            test_id: Test ID.

        Returns:
            The persisted state.
        """
        now = self.clock()
        difficulty = await self.initial_difficulty(user_id)
        state = AdaptiveSessionState(
            user_id=user_id,
            test_id=test_id,
            current_difficulty=difficulty,
            started_at=now,
            last_question_at=now,
        )
        await self._save(state)

        logger.info(
            f"Initialized adaptive state for user {user_id} on test {test_id} "
            f"at {difficulty.value} difficulty"
        )
        return state

    async def resume(self, user_id: str, test_id: str) -> Optional[AdaptiveSessionState]:
        """Return the persisted state, or None if there is none."""
        raw = await self.store.get(paths.adaptive_state(user_id, test_id))
        return _parse_state(raw)

    async def record_answer(
        self,
        user_id: str,
        test_id: str,
        question_id: str,
        is_correct: bool,
        response_time_ms: Optional[int] = None,
    ) -> AdaptiveSessionState:
        """
        Apply one answer to the persisted state and save the result.

        Args:
            user_id: Test-taker ID.
            test_id: Test ID.
            question_id: Question being answered.
            is_correct: Whether the answer was correct.
            response_time_ms: Time spent on the question, if known.

        Returns:
            The updated state.

        Raises:
            StateNotFoundError: If no state is persisted for the pair.
            DuplicateAnswerError: If the question was already answered.
        """
        state = await self.resume(user_id, test_id)
        if state is None:
            raise StateNotFoundError(user_id, test_id)

        updated = apply_answer(
            state,
            question_id,
            is_correct,
            now=self.clock(),
            response_time_ms=response_time_ms,
            policy=self.policy,
        )
        await self._save(updated)

        if updated.current_difficulty != state.current_difficulty:
            logger.info(
                f"User {user_id} on test {test_id}: difficulty "
                f"{state.current_difficulty.value} -> {updated.current_difficulty.value}"
            )
        return updated

    async def mark_completed(self, user_id: str, test_id: str) -> None:
        """Stamp the persisted state as belonging to a finished session."""
        completed_at = self.clock().isoformat()

        def stamp(current: Any) -> Any:
            if not current:
                return ABORT
            return {**current, "completed_at": completed_at}

        await self.store.transactional_update(
            paths.adaptive_state(user_id, test_id), stamp
        )

    async def discard(self, user_id: str, test_id: str) -> None:
        """Delete the persisted state."""
        await self.store.set(paths.adaptive_state(user_id, test_id), None)

    async def initial_difficulty(self, user_id: str) -> DifficultyLevel:
        """
        Starting difficulty from the user's most recent completed sessions.

        Averages the final difficulty of the last ``history_window`` completed
        sessions (ordered by completion time). Falls back to the policy default
        when there is no history or it cannot be read.
        """
        try:
            history = await self.store.get(paths.adaptive_history(user_id))
        except PersistenceError as e:
            logger.warning(
                f"Could not read difficulty history for user {user_id}, "
                f"using default: {e}"
            )
            return self.policy.default_difficulty

        completed: List[AdaptiveSessionState] = []
        for raw in (history or {}).values():
            state = _parse_state(raw)
            if state is not None and state.completed_at is not None:
                completed.append(state)

        completed.sort(key=lambda s: s.completed_at)
        recent = completed[-self.policy.history_window :]
        difficulty = difficulty_from_average([s.current_difficulty for s in recent])
        return difficulty or self.policy.default_difficulty

    async def _save(self, state: AdaptiveSessionState) -> None:
        await self.store.set(
            paths.adaptive_state(state.user_id, state.test_id),
            state.model_dump(mode="json"),
        )

"""
Difficulty transitions for adaptive delivery.

Difficulty moves one level at a time through an explicit transition table
keyed by (current difficulty, answer outcome). A move happens only once the
streak for that outcome reaches its threshold:

    correct:   1 in a row  -> promote (hard is a ceiling)
    incorrect: 2 in a row  -> demote  (easy is a floor)

Skip-level rule: a test-taker still on easy whose last five answers were all
served at easy with at least four correct jumps straight to hard on the next
promotion.

Everything here is pure: ``apply_answer`` returns a new state and never
touches the store.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from exam_engine.core.config import Settings
from exam_engine.core.exceptions import DuplicateAnswerError
from exam_engine.models.models import DifficultyLevel
from exam_engine.schemas.sessions import AdaptiveSessionState, DifficultyFlowEntry


class Outcome(str, enum.Enum):
    """Outcome of a single answer."""

    CORRECT = "correct"
    INCORRECT = "incorrect"


# Target difficulty once the outcome's streak threshold is reached
TRANSITIONS: Dict[tuple, DifficultyLevel] = {
    (DifficultyLevel.EASY, Outcome.CORRECT): DifficultyLevel.MEDIUM,
    (DifficultyLevel.MEDIUM, Outcome.CORRECT): DifficultyLevel.HARD,
    (DifficultyLevel.HARD, Outcome.CORRECT): DifficultyLevel.HARD,
    (DifficultyLevel.EASY, Outcome.INCORRECT): DifficultyLevel.EASY,
    (DifficultyLevel.MEDIUM, Outcome.INCORRECT): DifficultyLevel.EASY,
    (DifficultyLevel.HARD, Outcome.INCORRECT): DifficultyLevel.MEDIUM,
}

# Numeric level used to average difficulty across sessions
LEVEL_VALUES: Dict[DifficultyLevel, int] = {
    DifficultyLevel.EASY: 1,
    DifficultyLevel.MEDIUM: 2,
    DifficultyLevel.HARD: 3,
}

HARD_AVERAGE_THRESHOLD = 2.5
MEDIUM_AVERAGE_THRESHOLD = 1.5


@dataclass(frozen=True)
class DifficultyPolicy:
    """Thresholds and weights governing difficulty transitions."""

    correct_threshold: int = 1
    wrong_threshold: int = 2
    weights: Dict[DifficultyLevel, int] = field(
        default_factory=lambda: {
            DifficultyLevel.EASY: 1,
            DifficultyLevel.MEDIUM: 2,
            DifficultyLevel.HARD: 3,
        }
    )
    skip_level_window: int = 5
    skip_level_min_correct: int = 4
    default_difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    history_window: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "DifficultyPolicy":
        return cls(
            correct_threshold=settings.CORRECT_STREAK_THRESHOLD,
            wrong_threshold=settings.WRONG_STREAK_THRESHOLD,
            weights={
                DifficultyLevel(level): weight
                for level, weight in settings.DIFFICULTY_WEIGHTS.items()
            },
            skip_level_window=settings.SKIP_LEVEL_WINDOW,
            skip_level_min_correct=settings.SKIP_LEVEL_MIN_CORRECT,
            default_difficulty=settings.INITIAL_DIFFICULTY,
            history_window=settings.HISTORY_WINDOW,
        )

    def weight(self, difficulty: DifficultyLevel) -> int:
        return self.weights[difficulty]


def transition(difficulty: DifficultyLevel, outcome: Outcome) -> DifficultyLevel:
    """Look up the next difficulty for a threshold-reaching streak."""
    return TRANSITIONS[(difficulty, outcome)]


def skip_level_applies(
    flow: Sequence[DifficultyFlowEntry],
    current: DifficultyLevel,
    policy: DifficultyPolicy,
) -> bool:
    """
    Check the skip-level rule against the flow recorded before this answer.

    Returns:
        True if the test-taker is on easy and the last ``skip_level_window``
        entries were all served at easy with enough of them correct.
    """
    if current != DifficultyLevel.EASY:
        return False
    window = list(flow[-policy.skip_level_window :])
    if len(window) < policy.skip_level_window:
        return False
    if any(entry.difficulty != DifficultyLevel.EASY for entry in window):
        return False
    correct = sum(1 for entry in window if entry.was_correct)
    return correct >= policy.skip_level_min_correct


def difficulty_from_average(levels: List[DifficultyLevel]) -> Optional[DifficultyLevel]:
    """
    Map the average of past final difficulties to a starting difficulty.

    Returns:
        hard for an average >= 2.5, medium for >= 1.5, easy otherwise, or
        None when there is no history.
    """
    if not levels:
        return None
    average = sum(LEVEL_VALUES[level] for level in levels) / len(levels)
    if average >= HARD_AVERAGE_THRESHOLD:
        return DifficultyLevel.HARD
    if average >= MEDIUM_AVERAGE_THRESHOLD:
        return DifficultyLevel.MEDIUM
    return DifficultyLevel.EASY


def apply_answer(
    state: AdaptiveSessionState,
    question_id: str,
    is_correct: bool,
    now: datetime,
    response_time_ms: Optional[int] = None,
    policy: Optional[DifficultyPolicy] = None,
) -> AdaptiveSessionState:
    """
    Apply one answer to an adaptive state.

    Args:
        state: State before the answer.
        question_id: Question being answered.
        is_correct: Whether the selected option was the correct one.
        now: Time the answer was received.
        response_time_ms: Time spent on the question. Defaults to the time
            since the previous answer (or session start).
        policy: Transition thresholds and weights.

    Returns:
        A new state. The input is not modified.

    Raises:
        DuplicateAnswerError: If the question was already answered.
    """
    policy = policy or DifficultyPolicy()

    if question_id in state.asked_question_ids:
        raise DuplicateAnswerError(question_id)

    if response_time_ms is None:
        elapsed = (now - state.last_question_at).total_seconds()
        response_time_ms = max(0, int(elapsed * 1000))

    served = state.current_difficulty
    next_difficulty = served
    correct_streak = state.correct_streak
    wrong_streak = state.wrong_streak
    score = state.score
    weighted_score = state.weighted_score

    if is_correct:
        correct_streak += 1
        wrong_streak = 0
        score += 1
        weighted_score += policy.weight(served)
        if correct_streak >= policy.correct_threshold:
            if skip_level_applies(state.difficulty_flow, served, policy):
                next_difficulty = DifficultyLevel.HARD
            else:
                next_difficulty = transition(served, Outcome.CORRECT)
            correct_streak = 0
    else:
        wrong_streak += 1
        correct_streak = 0
        if wrong_streak >= policy.wrong_threshold:
            next_difficulty = transition(served, Outcome.INCORRECT)
            wrong_streak = 0

    entry = DifficultyFlowEntry(
        timestamp=now,
        difficulty=served,
        question_id=question_id,
        was_correct=is_correct,
        response_time_ms=response_time_ms,
    )

    return state.model_copy(
        update={
            "current_difficulty": next_difficulty,
            "correct_streak": correct_streak,
            "wrong_streak": wrong_streak,
            "asked_question_ids": [*state.asked_question_ids, question_id],
            "score": score,
            "weighted_score": weighted_score,
            "difficulty_flow": [*state.difficulty_flow, entry],
            "last_question_at": now,
        }
    )

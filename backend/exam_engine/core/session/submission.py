"""
Submission and scoring.

Finalizes a session into its ExamResponse. The flow:

1. Score the answers (or take the forced score of a terminated session)
2. Build the per-question detail records
3. Derive time spent from the session clock
4. Write the response, refusing to overwrite an existing complete one
5. Increment the test's attempt counter and the user's completion counter
6. Clear the timer and progress, stamp the adaptive state as completed
7. Release the integrity monitor

Step 4 is the only critical write: its failure raises PersistenceError and
leaves nothing written. Steps 5-7 run under ``graceful_failure`` and never
undo a written response.

On re-entry, ``load_prior_response`` applies the strict completeness check.
A response that fails it is archived under ``discarded_responses/`` and
wiped so a fresh session can start.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from exam_engine.core.adaptive.engine import AdaptiveDifficultyEngine
from exam_engine.core.datetime_utils import utc_now
from exam_engine.core.exceptions import IncompletePriorResponse, NoAnswersError
from exam_engine.core.graceful_failure import graceful_failure
from exam_engine.core.session.timing import remaining_seconds
from exam_engine.schemas.questions import Question
from exam_engine.schemas.responses import DetailedAnswer, ExamResponse
from exam_engine.schemas.sessions import AdaptiveSessionState
from exam_engine.store import paths
from exam_engine.store.base import ABORT, DocumentStore

logger = logging.getLogger(__name__)

# ISO-8601 timestamps are longer than a bare date such as "2024-01-01"
MIN_COMPLETED_AT_LENGTH = 10


def completeness_problems(raw: Any) -> List[str]:
    """
    List the reasons a stored response is not a complete record.

    A complete response has non-empty answers, an ISO ``completed_at``
    longer than 10 characters, a numeric non-negative score, and a positive
    question total. A response recording an integrity termination may have
    no answers: the termination itself is the outcome of the attempt.

    Returns:
        Empty list when the response is complete.
    """
    if not isinstance(raw, dict):
        return ["not a document"]

    problems: List[str] = []
    answers = raw.get("answers")
    terminated = raw.get("terminated_due_to_violations") is True
    if not isinstance(answers, dict) or not (answers or terminated):
        problems.append("no answers")

    completed_at = raw.get("completed_at")
    if not isinstance(completed_at, str) or len(completed_at) <= MIN_COMPLETED_AT_LENGTH:
        problems.append("missing completion timestamp")

    score = raw.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or score < 0:
        problems.append("invalid score")

    total = raw.get("total_questions")
    if isinstance(total, bool) or not isinstance(total, (int, float)) or total <= 0:
        problems.append("invalid question total")

    return problems


def is_complete_response(raw: Any) -> bool:
    return not completeness_problems(raw)


def score_answers(
    questions: Sequence[Question], answers: Dict[str, int]
) -> Tuple[int, Dict[str, DetailedAnswer]]:
    """
    Score answers against the questions as they were delivered.

    Answers to unknown question ids are ignored.

    Returns:
        Tuple of (number correct, detail record per answered question).
    """
    by_id = {q.id: q for q in questions}
    score = 0
    detailed: Dict[str, DetailedAnswer] = {}

    for question_id, selected in answers.items():
        question = by_id.get(question_id)
        if question is None:
            continue
        is_correct = selected == question.correct_answer
        if is_correct:
            score += 1
        selected_value = (
            question.options[selected] if 0 <= selected < len(question.options) else ""
        )
        detailed[question_id] = DetailedAnswer(
            selected_index=selected,
            selected_value=selected_value,
            is_correct=is_correct,
        )
    return score, detailed


def _increment(current: Any) -> int:
    if isinstance(current, bool) or not isinstance(current, int):
        return 1
    return current + 1


@dataclass
class SubmissionContext:
    """Everything needed to finalize one session."""

    user_id: str
    test_id: str
    questions: Sequence[Question]
    answers: Dict[str, int]
    duration_minutes: int
    started_at: datetime
    is_adaptive: bool = False
    adaptive_state: Optional[AdaptiveSessionState] = None
    release_integrity: Optional[Callable[[], None]] = field(default=None, repr=False)


class SubmissionEngine:
    """Writes final responses exactly once and cleans up after them."""

    def __init__(
        self,
        store: DocumentStore,
        adaptive_engine: AdaptiveDifficultyEngine,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.adaptive_engine = adaptive_engine
        self.clock = clock

    def build_response(
        self, ctx: SubmissionContext, forced_score: Optional[int] = None
    ) -> ExamResponse:
        """
        Assemble the response for a session without writing it.

        Raises:
            NoAnswersError: If there are no answers and no forced score.
        """
        if not ctx.answers and forced_score is None:
            raise NoAnswersError("Cannot submit a session with no answers")

        now = self.clock()
        score, detailed = score_answers(ctx.questions, ctx.answers)
        if forced_score is not None:
            score = forced_score

        remaining = remaining_seconds(ctx.started_at, ctx.duration_minutes, now)
        state = ctx.adaptive_state

        return ExamResponse(
            test_id=ctx.test_id,
            user_id=ctx.user_id,
            score=score,
            total_questions=max(1, len(ctx.questions)),
            answers=dict(ctx.answers),
            detailed_answers=detailed,
            completed_at=now.isoformat(),
            time_spent=ctx.duration_minutes * 60 - remaining,
            terminated_due_to_violations=forced_score is not None,
            is_adaptive=ctx.is_adaptive,
            weighted_score=state.weighted_score if state else None,
            final_difficulty=state.current_difficulty if state else None,
        )

    async def submit(
        self, ctx: SubmissionContext, forced_score: Optional[int] = None
    ) -> ExamResponse:
        """
        Finalize a session into its persisted response.

        Args:
            ctx: The session being finalized.
            forced_score: Score to record instead of the computed one. Set
                (to 0) only for integrity terminations.

        Returns:
            The persisted response. If a complete response was already on
            record, that one is returned and nothing is written.

        Raises:
            NoAnswersError: If there are no answers and no forced score.
            PersistenceError: If the response write fails.
        """
        response = self.build_response(ctx, forced_score)
        document = response.model_dump(mode="json")

        def write_once(current: Any) -> Any:
            if is_complete_response(current):
                return ABORT
            return document

        result = await self.store.transactional_update(
            paths.response(ctx.test_id, ctx.user_id), write_once
        )

        if not result.committed:
            logger.info(
                f"Response for user {ctx.user_id} on test {ctx.test_id} already "
                "recorded, keeping existing record"
            )
            response = ExamResponse.model_validate(result.value)
        else:
            logger.info(
                f"Recorded response for user {ctx.user_id} on test {ctx.test_id}: "
                f"{response.score}/{response.total_questions}"
                + (" (terminated)" if response.terminated_due_to_violations else "")
            )
            await self._increment_counters(ctx)

        await self._clean_up(ctx)
        return response

    async def load_prior_response(
        self, user_id: str, test_id: str
    ) -> Optional[ExamResponse]:
        """
        Return a complete prior response, discarding an incomplete one.

        Returns:
            The prior response, or None when there is none or it was
            incomplete (and has now been archived and wiped).
        """
        raw = await self.store.get(paths.response(test_id, user_id))
        if raw is None:
            return None

        try:
            problems = completeness_problems(raw)
            if problems:
                raise IncompletePriorResponse(test_id, user_id, problems)
            return ExamResponse.model_validate(raw)
        except (IncompletePriorResponse, ValidationError) as e:
            logger.warning(f"{e}; discarding and starting fresh")
            await self._discard_response(user_id, test_id, raw)
            return None

    async def _discard_response(self, user_id: str, test_id: str, raw: Any) -> None:
        stamp = self.clock().strftime("%Y%m%dT%H%M%S%fZ")
        with graceful_failure(
            "archive discarded response",
            logger,
            context={"user_id": user_id, "test_id": test_id},
        ):
            await self.store.set(
                paths.discarded_response(test_id, user_id, stamp), raw
            )
        await self.store.set(paths.response(test_id, user_id), None)

    async def _increment_counters(self, ctx: SubmissionContext) -> None:
        context = {"user_id": ctx.user_id, "test_id": ctx.test_id}
        with graceful_failure("increment test attempt counter", logger, context=context):
            await self.store.transactional_update(
                paths.times_attempted(ctx.test_id), _increment
            )
        with graceful_failure("increment user completion counter", logger, context=context):
            await self.store.transactional_update(
                paths.completed_counter(ctx.user_id), _increment
            )

    async def _clean_up(self, ctx: SubmissionContext) -> None:
        context = {"user_id": ctx.user_id, "test_id": ctx.test_id}
        with graceful_failure("clear session timer", logger, context=context):
            await self.store.set(paths.timer_state(ctx.user_id, ctx.test_id), None)
        with graceful_failure("clear session progress", logger, context=context):
            await self.store.set(paths.session_progress(ctx.user_id, ctx.test_id), None)
        if ctx.is_adaptive:
            with graceful_failure("mark adaptive state completed", logger, context=context):
                await self.adaptive_engine.mark_completed(ctx.user_id, ctx.test_id)
        if ctx.release_integrity is not None:
            with graceful_failure("release integrity monitor", logger, context=context):
                ctx.release_integrity()

"""
Exam session orchestration.

ExamSessionService runs every live session of the process:

    start  -> idempotency check -> timing -> adaptive state -> first question
    answer -> difficulty transition -> next question (or finalize on exhaustion)
    expiry / violation threshold / explicit submit -> finalize exactly once

Each live session owns a lifecycle state machine, an asyncio.Lock that
serializes answer processing, a countdown task and an integrity monitor. The
service is an ordinary object: the application builds one in its lifespan and
tests build their own against an in-memory store.
"""

import asyncio
import logging
import random
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from exam_engine.core.adaptive.difficulty import DifficultyPolicy
from exam_engine.core.adaptive.engine import AdaptiveDifficultyEngine
from exam_engine.core.adaptive.readiness import (
    AdaptiveReadinessResult,
    evaluate_adaptive_readiness,
)
from exam_engine.core.adaptive.selection import (
    FixedLayout,
    QuestionSelector,
    apply_layout,
    shuffle_layout,
)
from exam_engine.core.catalog import QuestionCatalog, check_test_window
from exam_engine.core.config import Settings, settings as default_settings
from exam_engine.core.datetime_utils import utc_now
from exam_engine.core.exceptions import (
    DuplicateAnswerError,
    EmptyQuestionBankError,
    IncompleteAnswersError,
    InvalidAnswerError,
    NoQuestionsAvailable,
    PersistenceError,
    SessionNotActiveError,
    TestNotFoundError,
)
from exam_engine.core.session.countdown import SessionCountdown
from exam_engine.core.session.integrity import IntegrityMonitor
from exam_engine.core.session.lifecycle import SessionLifecycle
from exam_engine.core.session.submission import SubmissionContext, SubmissionEngine
from exam_engine.core.session.timing import (
    SessionTimerManager,
    TimingDecision,
    remaining_seconds,
)
from exam_engine.models.models import SessionPhase, ViolationType
from exam_engine.schemas.questions import Question, TestDefinition
from exam_engine.schemas.responses import ExamResponse
from exam_engine.schemas.sessions import (
    AdaptiveSessionState,
    SessionProgress,
    SessionView,
    ViolationStatus,
)
from exam_engine.store import paths
from exam_engine.store.base import DocumentStore

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


@dataclass
class LiveSession:
    """In-process state of one running session."""

    user_id: str
    test_id: str
    definition: TestDefinition
    questions: List[Question]  # as delivered (fixed-order: shuffled, remapped)
    started_at: datetime
    progress: SessionProgress
    resumed: bool = False
    adaptive_state: Optional[AdaptiveSessionState] = None
    lifecycle: SessionLifecycle = field(default_factory=SessionLifecycle)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    countdown: Optional[SessionCountdown] = None
    integrity: Optional[IntegrityMonitor] = None
    response: Optional[ExamResponse] = None

    @property
    def key(self) -> SessionKey:
        return (self.user_id, self.test_id)

    @property
    def is_adaptive(self) -> bool:
        return self.definition.is_adaptive

    def find_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class ExamSessionService:
    """Starts, drives and finalizes exam sessions."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        config: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config or default_settings
        self.clock = clock
        self.rng = rng or random.Random()

        self.catalog = QuestionCatalog(store)
        self.adaptive = AdaptiveDifficultyEngine(
            store, DifficultyPolicy.from_settings(self.config), clock
        )
        self.selector = QuestionSelector(self.catalog, self.rng)
        self.timer = SessionTimerManager(
            store, self.config.RESUME_FORGIVENESS_SECONDS, clock
        )
        self.submissions = SubmissionEngine(store, self.adaptive, clock)

        # Active and submitting sessions
        self._sessions: Dict[SessionKey, LiveSession] = {}
        # Most recently finalized or expired sessions, oldest first
        self._finished: "OrderedDict[SessionKey, LiveSession]" = OrderedDict()
        self._start_locks: Dict[SessionKey, asyncio.Lock] = {}
        self._start_waiters: Dict[SessionKey, int] = {}

    # =========================================================================
    # Public operations
    # =========================================================================

    async def start(
        self, user_id: str, test_id: str, force_restart: bool = False
    ) -> SessionView:
        """
        Start, resume or attach to a session.

        Args:
            user_id: Test-taker ID.
            test_id: Test ID.
            force_restart: Discard prior progress and any prior response.

        Returns:
            SessionView of the live session, or of the existing result when
            the test was already completed.

        Raises:
            TestNotFoundError: Unknown test.
            TestWindowClosedError: Outside the test's availability window.
            EmptyQuestionBankError: The test has no valid questions.
            PersistenceError: A store operation failed.
        """
        key = (user_id, test_id)

        async with self._start_guard(key):
            live = self._sessions.get(key)
            if live is not None:
                if live.lifecycle.phase == SessionPhase.SUBMITTING:
                    # The running submission decides the outcome
                    return self._view(live)
                if live.lifecycle.is_active and not force_restart:
                    logger.info(
                        f"Attaching to live session for user {user_id} on test {test_id}"
                    )
                    return self._view(live)
                self._retire(live)

            definition = await self.catalog.get_test(test_id)
            if definition is None:
                raise TestNotFoundError(test_id)
            check_test_window(definition, self.clock())

            if not force_restart:
                prior = await self.submissions.load_prior_response(user_id, test_id)
                if prior is not None:
                    logger.info(
                        f"User {user_id} already completed test {test_id}, "
                        "returning existing result"
                    )
                    return self._completed_view(definition, prior)

            questions = await self.catalog.load_questions(test_id)
            if not questions:
                raise EmptyQuestionBankError(test_id)

            decision = await self.timer.resolve(
                user_id, test_id, definition.duration, force_restart
            )
            live = await self._build_session(
                user_id, test_id, definition, questions, decision
            )
            self._register(live)

            logger.info(
                f"Session for user {user_id} on test {test_id} "
                f"{'resumed' if live.resumed else 'started'} "
                f"({'adaptive' if live.is_adaptive else 'fixed order'}, "
                f"{len(live.questions)} questions)",
                extra={"user_id": user_id, "test_id": test_id},
            )

            if live.is_adaptive and live.progress.pending_question_id is None:
                # Every question was answered before an interruption
                await self._finalize(live, reason="questions exhausted")

            return self._view(live)

    async def answer(
        self,
        user_id: str,
        test_id: str,
        question_id: str,
        selected_index: int,
        response_time_ms: Optional[int] = None,
    ) -> SessionView:
        """
        Record an answer and advance the session.

        Adaptive sessions accept only the question currently being asked and
        respond with the next one; fixed-order sessions accept (and allow
        changing) an answer to any of their questions. Answers arriving after
        the session stopped being active are ignored.

        Raises:
            SessionNotActiveError: No live session for the pair.
            InvalidAnswerError: Unknown question or option index.
            DuplicateAnswerError: Adaptive question answered twice.
            StateNotFoundError: Adaptive state vanished from the store.
            PersistenceError: A store operation failed.
        """
        live = self._require_live(user_id, test_id)

        async with live.lock:
            if not live.lifecycle.is_active:
                return self._view(live)

            question = live.find_question(question_id)
            if question is None:
                raise InvalidAnswerError(
                    f"Question {question_id} is not part of this test"
                )
            if not 0 <= selected_index < len(question.options):
                raise InvalidAnswerError(
                    f"Option {selected_index} out of range for question {question_id}"
                )

            if live.is_adaptive:
                await self._answer_adaptive(
                    live, question, selected_index, response_time_ms
                )
            else:
                live.progress.answers[question_id] = selected_index
                await self._save_progress(live)

        return self._view(live)

    async def submit(
        self, user_id: str, test_id: str, allow_incomplete: bool = False
    ) -> SessionView:
        """
        Submit a session explicitly.

        Raises:
            SessionNotActiveError: No live session for the pair.
            IncompleteAnswersError: Fixed-order test with unanswered questions
                and ``allow_incomplete`` not set.
            NoAnswersError: Nothing answered yet.
            PersistenceError: The response could not be written; the session
                stays active so the submission can be retried.
        """
        live = self._require_live(user_id, test_id)
        if not live.lifecycle.is_active:
            return self._view(live)

        if not live.is_adaptive and not allow_incomplete:
            unanswered = [
                position
                for position, question in enumerate(live.questions, start=1)
                if question.id not in live.progress.answers
            ]
            if unanswered:
                raise IncompleteAnswersError(unanswered)

        await self._finalize(live, reason="submitted")
        return self._view(live)

    async def report_violation(
        self,
        user_id: str,
        test_id: str,
        violation_type: ViolationType,
        description: Optional[str] = None,
    ) -> ViolationStatus:
        """Forward an integrity violation to the session's monitor."""
        live = self._require_live(user_id, test_id)
        if live.integrity is None:
            raise SessionNotActiveError(user_id, test_id)

        counted = False
        if live.lifecycle.is_active:
            counted = await live.integrity.record_violation(violation_type, description)

        response = live.response
        return ViolationStatus(
            counted=counted,
            violation_count=live.integrity.violation_count,
            max_violations=live.integrity.max_violations,
            terminated=bool(response and response.terminated_due_to_violations),
            response=response,
        )

    async def terminate(self, user_id: str, test_id: str) -> SessionView:
        """Force-terminate a session with a zero score."""
        live = self._require_live(user_id, test_id)
        await self._finalize(live, forced_score=0, reason="terminated")
        return self._view(live)

    def get_view(self, user_id: str, test_id: str) -> SessionView:
        """Current view of a live (or recently finished) session."""
        return self._view(self._require_live(user_id, test_id))

    async def get_result(self, user_id: str, test_id: str) -> Optional[ExamResponse]:
        """The persisted response for the pair, if any."""
        raw = await self.store.get(paths.response(test_id, user_id))
        if not raw:
            return None
        try:
            return ExamResponse.model_validate(raw)
        except ValidationError:
            logger.warning(
                f"Stored response for user {user_id} on test {test_id} is unreadable"
            )
            return None

    async def evaluate_readiness(self, test_id: str) -> AdaptiveReadinessResult:
        """Check a test's question bank for adaptive delivery."""
        if await self.catalog.get_test(test_id) is None:
            raise TestNotFoundError(test_id)
        questions = await self.catalog.load_questions(test_id)
        return evaluate_adaptive_readiness(
            questions, self.config.MIN_QUESTIONS_PER_DIFFICULTY
        )

    async def shutdown(self) -> None:
        """Stop every countdown. Persisted state is left for resumption."""
        countdowns = [s.countdown for s in self._sessions.values() if s.countdown]
        for countdown in countdowns:
            countdown.cancel()
        for countdown in countdowns:
            await countdown.wait()
        self._sessions.clear()
        self._finished.clear()

    # =========================================================================
    # Session construction
    # =========================================================================

    async def _build_session(
        self,
        user_id: str,
        test_id: str,
        definition: TestDefinition,
        questions: List[Question],
        decision: TimingDecision,
    ) -> LiveSession:
        progress = SessionProgress()
        if decision.is_resume:
            progress = await self._load_progress(user_id, test_id)

        adaptive_state: Optional[AdaptiveSessionState] = None
        if definition.is_adaptive:
            delivered = list(questions)
            if decision.is_resume:
                adaptive_state = await self.adaptive.resume(user_id, test_id)
            if (
                adaptive_state is None
                or adaptive_state.completed_at is not None
                or (adaptive_state.asked_question_ids and not progress.answers)
            ):
                adaptive_state = await self.adaptive.initialize(user_id, test_id)
                progress = SessionProgress()
            asked = set(adaptive_state.asked_question_ids)
            progress.answers = {
                qid: idx for qid, idx in progress.answers.items() if qid in asked
            }
            pending = progress.pending_question_id
            if pending is None or pending in asked or not any(
                q.id == pending for q in delivered
            ):
                next_question = self.selector.choose(delivered, adaptive_state)
                progress.pending_question_id = next_question.id if next_question else None
        else:
            if progress.question_order:
                layout = FixedLayout(progress.question_order, progress.option_orders)
            else:
                layout = shuffle_layout(questions, self.rng)
            delivered = apply_layout(questions, layout)
            progress.question_order = [q.id for q in delivered]
            progress.option_orders = {
                **layout.option_orders,
                **{
                    q.id: list(range(len(q.options)))
                    for q in delivered
                    if q.id not in layout.option_orders
                },
            }
            known = set(progress.question_order)
            progress.answers = {
                qid: idx for qid, idx in progress.answers.items() if qid in known
            }

        live = LiveSession(
            user_id=user_id,
            test_id=test_id,
            definition=definition,
            questions=delivered,
            started_at=decision.started_at,
            progress=progress,
            resumed=decision.is_resume,
            adaptive_state=adaptive_state,
        )
        await self._save_progress(live)
        return live

    def _register(self, live: LiveSession) -> None:
        context = f"(user {live.user_id}, test {live.test_id})"
        live.integrity = IntegrityMonitor(
            max_violations=self.config.MAX_VIOLATIONS,
            grace_period_seconds=self.config.VIOLATION_GRACE_PERIOD_SECONDS,
            on_max_violations_reached=partial(self._on_max_violations, live),
            clock=self.clock,
            context=context,
        )
        live.countdown = SessionCountdown(
            started_at=live.started_at,
            duration_minutes=live.definition.duration,
            on_expire=partial(self._on_time_expired, live),
            tick_seconds=self.config.COUNTDOWN_TICK_SECONDS,
            clock=self.clock,
            name=f"countdown:{live.user_id}:{live.test_id}",
        )
        self._finished.pop(live.key, None)
        self._sessions[live.key] = live
        live.countdown.start()

    @asynccontextmanager
    async def _start_guard(self, key: SessionKey) -> AsyncIterator[None]:
        """Serialize starts per pair; the lock is dropped once nobody waits on it."""
        lock = self._start_locks.setdefault(key, asyncio.Lock())
        self._start_waiters[key] = self._start_waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._start_waiters[key] -= 1
            if not self._start_waiters[key]:
                del self._start_waiters[key]
                self._start_locks.pop(key, None)

    def _park(self, live: LiveSession) -> None:
        """Move a finished session out of the live registry into the bounded cache."""
        if self._sessions.get(live.key) is live:
            del self._sessions[live.key]
        self._finished[live.key] = live
        self._finished.move_to_end(live.key)
        while len(self._finished) > self.config.FINISHED_SESSION_CACHE_SIZE:
            self._finished.popitem(last=False)

    def _retire(self, live: LiveSession) -> None:
        if live.countdown is not None:
            live.countdown.cancel()
        if live.integrity is not None:
            live.integrity.release()
        self._sessions.pop(live.key, None)

    def _require_live(self, user_id: str, test_id: str) -> LiveSession:
        key = (user_id, test_id)
        live = self._sessions.get(key) or self._finished.get(key)
        if live is None:
            raise SessionNotActiveError(user_id, test_id)
        return live

    # =========================================================================
    # Answer processing and finalization
    # =========================================================================

    async def _answer_adaptive(
        self,
        live: LiveSession,
        question: Question,
        selected_index: int,
        response_time_ms: Optional[int],
    ) -> None:
        if question.id != live.progress.pending_question_id:
            if question.id in live.progress.answers:
                raise DuplicateAnswerError(question.id)
            raise InvalidAnswerError(
                f"Question {question.id} is not the question currently being asked"
            )

        is_correct = selected_index == question.correct_answer
        live.progress.answers[question.id] = selected_index
        try:
            state = await self.adaptive.record_answer(
                live.user_id, live.test_id, question.id, is_correct, response_time_ms
            )
        except Exception:
            live.progress.answers.pop(question.id, None)
            raise
        live.adaptive_state = state

        if not live.lifecycle.is_active:
            # Expired or terminated while the answer was being saved
            return

        try:
            next_question = self._next_question(live, state)
        except NoQuestionsAvailable as e:
            logger.info(f"{e}, submitting")
            live.progress.pending_question_id = None
            await self._save_progress(live)
            await self._finalize(live, reason="questions exhausted")
            return

        live.progress.pending_question_id = next_question.id
        await self._save_progress(live)

    def _next_question(
        self, live: LiveSession, state: AdaptiveSessionState
    ) -> Question:
        """
        Pick the next adaptive question.

        Raises:
            NoQuestionsAvailable: Every question of the test has been asked.
        """
        question = self.selector.choose(live.questions, state)
        if question is None:
            raise NoQuestionsAvailable(
                f"All {len(live.questions)} questions of test {live.test_id} "
                f"have been asked of user {live.user_id}"
            )
        return question

    async def _finalize(
        self,
        live: LiveSession,
        forced_score: Optional[int] = None,
        reason: str = "submitted",
    ) -> Optional[ExamResponse]:
        """Write the session's response. Later calls are no-ops."""
        if not live.lifecycle.begin_submission():
            return live.response

        ctx = SubmissionContext(
            user_id=live.user_id,
            test_id=live.test_id,
            questions=live.questions,
            answers=dict(live.progress.answers),
            duration_minutes=live.definition.duration,
            started_at=live.started_at,
            is_adaptive=live.is_adaptive,
            adaptive_state=live.adaptive_state,
            release_integrity=live.integrity.release if live.integrity else None,
        )
        try:
            response = await self.submissions.submit(ctx, forced_score=forced_score)
        except Exception:
            live.lifecycle.abort_submission()
            raise

        live.response = response
        live.lifecycle.finalize()
        if live.countdown is not None:
            live.countdown.cancel()
        self._park(live)

        logger.info(
            f"Finalized session for user {live.user_id} on test {live.test_id} "
            f"({reason})",
            extra={
                "user_id": live.user_id,
                "test_id": live.test_id,
                "session_phase": live.lifecycle.phase.value,
            },
        )
        return response

    async def _on_time_expired(self, live: LiveSession) -> None:
        if not live.lifecycle.is_active:
            return

        if live.progress.answers:
            try:
                await self._finalize(live, reason="time expired")
            except PersistenceError as e:
                logger.error(
                    f"Automatic submission failed for user {live.user_id} on test "
                    f"{live.test_id}; awaiting manual submission: {e}"
                )
            return

        live.lifecycle.expire()
        if live.integrity is not None:
            live.integrity.release()
        self._park(live)
        logger.info(
            f"Session for user {live.user_id} on test {live.test_id} expired "
            "with no answers, no response recorded"
        )

    async def _on_max_violations(self, live: LiveSession) -> None:
        logger.warning(
            f"Maximum integrity violations reached for user {live.user_id} on test "
            f"{live.test_id}, terminating"
        )
        await self._finalize(live, forced_score=0, reason="integrity violations")

    # =========================================================================
    # Persistence and views
    # =========================================================================

    async def _load_progress(self, user_id: str, test_id: str) -> SessionProgress:
        raw = await self.store.get(paths.session_progress(user_id, test_id))
        if not raw:
            return SessionProgress()
        try:
            return SessionProgress.model_validate(raw)
        except ValidationError:
            logger.warning(
                f"Discarding unreadable progress for user {user_id} on test {test_id}"
            )
            return SessionProgress()

    async def _save_progress(self, live: LiveSession) -> None:
        await self.store.set(
            paths.session_progress(live.user_id, live.test_id),
            live.progress.model_dump(mode="json"),
        )

    def _view(self, live: LiveSession) -> SessionView:
        remaining = 0
        if live.lifecycle.is_active:
            remaining = remaining_seconds(
                live.started_at, live.definition.duration, self.clock()
            )

        current_question = None
        questions = None
        if live.is_adaptive:
            pending = live.progress.pending_question_id
            if pending is not None and live.lifecycle.is_active:
                question = live.find_question(pending)
                current_question = question.to_public() if question else None
        else:
            questions = [q.to_public() for q in live.questions]

        return SessionView(
            test_id=live.test_id,
            phase=live.lifecycle.phase,
            is_adaptive=live.is_adaptive,
            duration_minutes=live.definition.duration,
            remaining_seconds=remaining,
            resumed=live.resumed,
            current_difficulty=(
                live.adaptive_state.current_difficulty if live.adaptive_state else None
            ),
            current_question=current_question,
            questions=questions,
            answers=dict(live.progress.answers),
            total_questions=len(live.questions),
            violation_count=live.integrity.violation_count if live.integrity else 0,
            response=live.response,
        )

    def _completed_view(
        self, definition: TestDefinition, response: ExamResponse
    ) -> SessionView:
        return SessionView(
            test_id=definition.id,
            phase=SessionPhase.FINALIZED,
            is_adaptive=definition.is_adaptive,
            duration_minutes=definition.duration,
            remaining_seconds=0,
            already_completed=True,
            answers=dict(response.answers),
            total_questions=response.total_questions,
            response=response,
        )

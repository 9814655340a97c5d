"""
Tests for submission, scoring and exactly-once response writes.
"""
from datetime import timedelta

import pytest

from exam_engine.core.adaptive.engine import AdaptiveDifficultyEngine
from exam_engine.core.exceptions import NoAnswersError, PersistenceError
from exam_engine.core.session.submission import (
    SubmissionContext,
    SubmissionEngine,
    completeness_problems,
    is_complete_response,
    score_answers,
)
from exam_engine.models.models import DifficultyLevel
from exam_engine.store import paths


def complete_response(**overrides):
    doc = {
        "test_id": "t1",
        "user_id": "u1",
        "score": 2,
        "total_questions": 3,
        "answers": {"q1": 0, "q2": 1},
        "detailed_answers": {},
        "completed_at": "2025-03-01T09:10:00+00:00",
        "time_spent": 600,
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def questions(make_question):
    return [
        make_question("q1", correct_answer=0),
        make_question("q2", correct_answer=2),
        make_question("q3", correct_answer=3),
    ]


@pytest.fixture
def make_context(questions, clock):
    def _make(**overrides):
        data = {
            "user_id": "u1",
            "test_id": "t1",
            "questions": questions,
            "answers": {"q1": 0, "q2": 1, "q3": 3},
            "duration_minutes": 10,
            "started_at": clock.now,
        }
        data.update(overrides)
        return SubmissionContext(**data)

    return _make


def make_engine(store, clock):
    return SubmissionEngine(store, AdaptiveDifficultyEngine(store, clock=clock), clock)


class TestCompleteness:
    """Tests for the strict completeness check."""

    def test_complete(self):
        assert completeness_problems(complete_response()) == []
        assert is_complete_response(complete_response())

    @pytest.mark.parametrize(
        "overrides,problem",
        [
            ({"answers": {}}, "no answers"),
            ({"answers": None}, "no answers"),
            ({"completed_at": "2025-03-01"}, "missing completion timestamp"),
            ({"completed_at": None}, "missing completion timestamp"),
            ({"score": -1}, "invalid score"),
            ({"score": "3"}, "invalid score"),
            ({"score": True}, "invalid score"),
            ({"total_questions": 0}, "invalid question total"),
            ({"total_questions": None}, "invalid question total"),
        ],
    )
    def test_incomplete(self, overrides, problem):
        assert problem in completeness_problems(complete_response(**overrides))

    def test_zero_score_is_complete(self):
        assert is_complete_response(complete_response(score=0))

    def test_termination_without_answers_is_complete(self):
        raw = complete_response(answers={}, score=0, terminated_due_to_violations=True)

        assert completeness_problems(raw) == []

    def test_termination_flag_must_be_true(self):
        raw = complete_response(answers={}, terminated_due_to_violations="yes")

        assert "no answers" in completeness_problems(raw)

    @pytest.mark.parametrize("raw", [None, [], "done"])
    def test_not_a_document(self, raw):
        assert not is_complete_response(raw)


class TestScoreAnswers:
    """Tests for score_answers."""

    def test_scores_and_details(self, questions):
        score, detailed = score_answers(questions, {"q1": 0, "q2": 1, "q3": 3})

        assert score == 2
        assert detailed["q1"].is_correct is True
        assert detailed["q2"].is_correct is False
        assert detailed["q2"].selected_value == "q2-b"
        assert detailed["q3"].selected_index == 3

    def test_unknown_questions_ignored(self, questions):
        score, detailed = score_answers(questions, {"q1": 0, "ghost": 1})

        assert score == 1
        assert set(detailed) == {"q1"}


class TestBuildResponse:
    """Tests for SubmissionEngine.build_response."""

    def test_fields(self, store, clock, make_context):
        engine = make_engine(store, clock)
        ctx = make_context()
        clock.advance(125.6)

        response = engine.build_response(ctx)

        assert response.score == 2
        assert response.total_questions == 3
        assert response.time_spent == 125
        assert response.completed_at == clock.now.isoformat()
        assert response.terminated_due_to_violations is False
        assert response.weighted_score is None
        assert response.final_difficulty is None

    def test_time_spent_capped_at_duration(self, store, clock, make_context):
        engine = make_engine(store, clock)
        ctx = make_context()
        clock.advance(3600)

        assert engine.build_response(ctx).time_spent == 600

    def test_no_answers_rejected(self, store, clock, make_context):
        with pytest.raises(NoAnswersError):
            make_engine(store, clock).build_response(make_context(answers={}))

    def test_forced_score_without_answers(self, store, clock, make_context):
        response = make_engine(store, clock).build_response(
            make_context(answers={}), forced_score=0
        )

        assert response.score == 0
        assert response.terminated_due_to_violations is True
        assert response.answers == {}

    async def test_adaptive_fields(self, store, clock, make_context):
        adaptive = AdaptiveDifficultyEngine(store, clock=clock)
        await adaptive.initialize("u1", "t1")
        state = await adaptive.record_answer("u1", "t1", "q1", is_correct=True)

        response = make_engine(store, clock).build_response(
            make_context(answers={"q1": 0}, is_adaptive=True, adaptive_state=state)
        )

        assert response.is_adaptive is True
        assert response.weighted_score == 2
        assert response.final_difficulty == DifficultyLevel.HARD


class TestSubmit:
    """Tests for SubmissionEngine.submit."""

    async def test_writes_response_and_counters(self, store, clock, make_context):
        await store.set(paths.definition("t1"), {"duration": 10})
        await store.set(paths.timer_state("u1", "t1"), {"started_at": clock.now.isoformat()})
        await store.set(paths.session_progress("u1", "t1"), {"answers": {"q1": 0}})

        response = await make_engine(store, clock).submit(make_context())

        stored = await store.get(paths.response("t1", "u1"))
        assert stored == response.model_dump(mode="json")
        assert await store.get(paths.times_attempted("t1")) == 1
        assert await store.get(paths.completed_counter("u1")) == 1
        assert await store.get(paths.timer_state("u1", "t1")) is None
        assert await store.get(paths.session_progress("u1", "t1")) is None

    async def test_existing_complete_response_kept(self, store, clock, make_context):
        existing = complete_response(score=1)
        await store.set(paths.response("t1", "u1"), existing)

        response = await make_engine(store, clock).submit(make_context())

        assert response.score == 1
        assert await store.get(paths.response("t1", "u1")) == existing
        assert await store.get(paths.completed_counter("u1")) is None

    async def test_existing_termination_kept(self, store, clock, make_context):
        terminated = complete_response(
            answers={}, score=0, terminated_due_to_violations=True
        )
        await store.set(paths.response("t1", "u1"), terminated)

        response = await make_engine(store, clock).submit(make_context())

        assert response.terminated_due_to_violations is True
        assert response.score == 0
        assert await store.get(paths.response("t1", "u1")) == terminated

    async def test_incomplete_existing_response_overwritten(
        self, store, clock, make_context
    ):
        await store.set(paths.response("t1", "u1"), complete_response(answers={}))

        response = await make_engine(store, clock).submit(make_context())

        assert response.score == 2
        assert (await store.get(paths.response("t1", "u1")))["score"] == 2

    async def test_failed_write_then_retry_records_once(
        self, store, clock, make_context, make_flaky_store
    ):
        """One failed write followed by a manual resubmit yields one response."""
        flaky = make_flaky_store(store, fail_prefixes=["responses/"], failures=1)
        engine = make_engine(flaky, clock)
        ctx = make_context()

        with pytest.raises(PersistenceError):
            await engine.submit(ctx)
        assert await store.get(paths.response("t1", "u1")) is None
        assert await store.get(paths.completed_counter("u1")) is None

        await engine.submit(ctx)
        await engine.submit(ctx)

        assert await store.get("responses/t1") == {
            "u1": (await store.get(paths.response("t1", "u1")))
        }
        assert await store.get(paths.completed_counter("u1")) == 1

    async def test_counter_failure_does_not_lose_response(
        self, store, clock, make_context, make_flaky_store
    ):
        flaky = make_flaky_store(store, fail_prefixes=["users/"], failures=5)

        response = await make_engine(flaky, clock).submit(make_context())

        assert await store.get(paths.response("t1", "u1")) == response.model_dump(
            mode="json"
        )
        assert await store.get(paths.times_attempted("t1")) == 1
        assert flaky.failed_paths == [paths.completed_counter("u1")]

    async def test_cleanup_failure_is_tolerated(
        self, store, clock, make_context, make_flaky_store
    ):
        flaky = make_flaky_store(store, fail_prefixes=["timer_states/"], failures=1)
        released = []

        await make_engine(flaky, clock).submit(
            make_context(release_integrity=lambda: released.append(True))
        )

        assert await store.get(paths.response("t1", "u1")) is not None
        assert released == [True]

    async def test_adaptive_state_marked_completed(self, store, clock, make_context):
        adaptive = AdaptiveDifficultyEngine(store, clock=clock)
        await adaptive.initialize("u1", "t1")
        state = await adaptive.record_answer("u1", "t1", "q1", is_correct=True)
        clock.advance(30)

        await make_engine(store, clock).submit(
            make_context(answers={"q1": 0}, is_adaptive=True, adaptive_state=state)
        )

        stored = await adaptive.resume("u1", "t1")
        assert stored.completed_at == clock.now

    async def test_counters_increment_across_users(self, store, clock, make_context):
        engine = make_engine(store, clock)
        await store.set(paths.definition("t1"), {"duration": 10, "times_attempted": 4})

        await engine.submit(make_context(user_id="u1"))
        await engine.submit(make_context(user_id="u2"))

        assert await store.get(paths.times_attempted("t1")) == 6


class TestLoadPriorResponse:
    """Tests for SubmissionEngine.load_prior_response."""

    async def test_none_when_absent(self, store, clock):
        assert await make_engine(store, clock).load_prior_response("u1", "t1") is None

    async def test_complete_response_returned(self, store, clock):
        await store.set(paths.response("t1", "u1"), complete_response())

        prior = await make_engine(store, clock).load_prior_response("u1", "t1")

        assert prior.score == 2
        assert prior.answers == {"q1": 0, "q2": 1}

    async def test_termination_without_answers_returned(self, store, clock):
        terminated = complete_response(
            answers={}, score=0, terminated_due_to_violations=True
        )
        await store.set(paths.response("t1", "u1"), terminated)

        prior = await make_engine(store, clock).load_prior_response("u1", "t1")

        assert prior.terminated_due_to_violations is True
        assert await store.get(paths.response("t1", "u1")) == terminated

    async def test_incomplete_response_archived_and_wiped(self, store, clock):
        broken = complete_response(completed_at="")
        await store.set(paths.response("t1", "u1"), broken)

        prior = await make_engine(store, clock).load_prior_response("u1", "t1")

        assert prior is None
        assert await store.get(paths.response("t1", "u1")) is None
        archived = await store.get("discarded_responses/t1/u1")
        assert list(archived.values()) == [broken]

    async def test_unparseable_response_archived(self, store, clock):
        broken = complete_response(time_spent="long")
        await store.set(paths.response("t1", "u1"), broken)

        prior = await make_engine(store, clock).load_prior_response("u1", "t1")

        assert prior is None
        assert await store.get(paths.response("t1", "u1")) is None

    async def test_archive_failure_still_wipes(self, store, clock, make_flaky_store):
        flaky = make_flaky_store(store, fail_prefixes=["discarded_responses/"])
        await store.set(paths.response("t1", "u1"), {"score": 1})

        assert await make_engine(flaky, clock).load_prior_response("u1", "t1") is None
        assert await store.get(paths.response("t1", "u1")) is None

    async def test_repeated_discards_kept_separately(self, store, clock):
        engine = make_engine(store, clock)
        for score in (1, 2):
            await store.set(paths.response("t1", "u1"), {"score": score})
            await engine.load_prior_response("u1", "t1")
            clock.advance(timedelta(seconds=1).total_seconds())

        archived = await store.get("discarded_responses/t1/u1")
        assert sorted(doc["score"] for doc in archived.values()) == [1, 2]

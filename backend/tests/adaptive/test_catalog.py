"""
Tests for the question catalog: bank parsing, test windows and seeding.
"""
from datetime import datetime, timedelta, timezone

import pytest

from exam_engine.core.catalog import (
    QuestionCatalog,
    check_test_window,
    parse_question_bank,
    seed_catalog,
)
from exam_engine.core.exceptions import TestWindowClosedError
from exam_engine.models.models import DifficultyLevel, QuestionType
from exam_engine.schemas.questions import TestDefinition
from exam_engine.store import paths

NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def valid_doc(**overrides):
    doc = {
        "text": "Which keyword declares a constant?",
        "options": ["var", "let", "const", "static"],
        "correct_answer": 2,
        "difficulty": "easy",
    }
    doc.update(overrides)
    return doc


class TestParseQuestionBank:
    """Tests for parse_question_bank."""

    def test_mapping_ids_come_from_keys(self):
        questions = parse_question_bank("t1", {"q1": valid_doc(), "q2": valid_doc()})

        assert [q.id for q in questions] == ["q1", "q2"]
        assert questions[0].correct_answer == 2
        assert questions[0].question_type == QuestionType.TEXT

    def test_list_of_documents(self):
        questions = parse_question_bank("t1", [valid_doc(id="a"), valid_doc(id="b")])

        assert [q.id for q in questions] == ["a", "b"]

    @pytest.mark.parametrize(
        "broken",
        [
            valid_doc(options=["only", "three", "options"]),
            valid_doc(options=["1", "2", "3", "4", "5", "6"]),
            valid_doc(correct_answer="2"),
            valid_doc(correct_answer=True),
            valid_doc(correct_answer=4),
            valid_doc(correct_answer=-1),
            valid_doc(options=None),
        ],
    )
    def test_malformed_entries_dropped(self, broken):
        questions = parse_question_bank("t1", {"good": valid_doc(), "bad": broken})

        assert [q.id for q in questions] == ["good"]

    def test_non_document_entries_dropped(self):
        questions = parse_question_bank("t1", {"good": valid_doc(), "bad": "text"})

        assert [q.id for q in questions] == ["good"]

    def test_missing_difficulty_defaults_to_medium(self):
        doc = valid_doc()
        del doc["difficulty"]

        [question] = parse_question_bank("t1", {"q1": doc})

        assert question.difficulty == DifficultyLevel.MEDIUM

    def test_code_question_defaults_language(self):
        [question] = parse_question_bank(
            "t1",
            {"q1": valid_doc(question_type="code", code_content="let x = 1", code_language="")},
        )

        assert question.question_type == QuestionType.CODE
        assert question.code_language == "javascript"

    @pytest.mark.parametrize("raw", [None, {}, [], "not a bank", 42])
    def test_empty_or_invalid_bank(self, raw):
        assert parse_question_bank("t1", raw) == []

    def test_public_view_hides_answer_key(self):
        [question] = parse_question_bank("t1", {"q1": valid_doc()})

        public = question.to_public().model_dump()

        assert "correct_answer" not in public
        assert public["options"] == ["var", "let", "const", "static"]


class TestCheckTestWindow:
    """Tests for check_test_window."""

    def make_definition(self, **kwargs):
        return TestDefinition(id="t1", duration=30, **kwargs)

    def test_no_window_always_open(self):
        check_test_window(self.make_definition(), NOW)

    def test_inside_window(self):
        definition = self.make_definition(
            start_time=NOW - timedelta(hours=1), end_time=NOW + timedelta(hours=1)
        )

        check_test_window(definition, NOW)

    def test_before_start(self):
        definition = self.make_definition(start_time=NOW + timedelta(minutes=5))

        with pytest.raises(TestWindowClosedError) as exc_info:
            check_test_window(definition, NOW)

        assert exc_info.value.not_yet_open is True

    def test_after_end(self):
        definition = self.make_definition(end_time=NOW - timedelta(seconds=1))

        with pytest.raises(TestWindowClosedError) as exc_info:
            check_test_window(definition, NOW)

        assert exc_info.value.not_yet_open is False

    def test_naive_window_treated_as_utc(self):
        definition = self.make_definition(start_time=datetime(2025, 3, 1, 10, 0, 0))

        with pytest.raises(TestWindowClosedError):
            check_test_window(definition, NOW)


class TestQuestionCatalog:
    """Tests for QuestionCatalog and seed_catalog."""

    async def test_get_test(self, store):
        await store.set(
            paths.definition("t1"),
            {"title": "Algebra", "duration": 20, "is_adaptive": True},
        )
        catalog = QuestionCatalog(store)

        definition = await catalog.get_test("t1")

        assert definition.id == "t1"
        assert definition.duration == 20
        assert definition.is_adaptive is True
        assert definition.times_attempted == 0

    async def test_missing_test(self, store):
        assert await QuestionCatalog(store).get_test("nope") is None

    async def test_invalid_definition(self, store):
        await store.set(paths.definition("t1"), {"title": "No duration"})

        assert await QuestionCatalog(store).get_test("t1") is None

    async def test_attempt_counter_lives_in_definition(self, store):
        await store.set(paths.definition("t1"), {"duration": 20})
        await store.set(paths.times_attempted("t1"), 4)

        definition = await QuestionCatalog(store).get_test("t1")

        assert definition.times_attempted == 4

    async def test_seed_catalog(self, store):
        data = {
            "tests": {"t1": {"title": "Algebra", "duration": 10}},
            "questions": {"t1": {"q1": valid_doc(), "q2": valid_doc(options=[])}},
        }

        written = await seed_catalog(store, data)

        assert written == 1
        catalog = QuestionCatalog(store)
        assert (await catalog.get_test("t1")).title == "Algebra"
        assert [q.id for q in await catalog.load_questions("t1")] == ["q1"]

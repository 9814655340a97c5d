"""
Read-only access to test definitions and question banks.

Question banks are stored at ``questions/{test_id}`` as a mapping of question
id to question document. Entries that fail validation (missing options, a
non-integer or out-of-range answer key, ...) are dropped at load time and
logged, so the rest of the engine only ever sees well-formed questions.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from exam_engine.core.datetime_utils import ensure_timezone_aware
from exam_engine.core.exceptions import TestWindowClosedError
from exam_engine.schemas.questions import Question, TestDefinition
from exam_engine.store import paths
from exam_engine.store.base import DocumentStore

logger = logging.getLogger(__name__)


def parse_question_bank(test_id: str, raw: Any) -> List[Question]:
    """
    Validate raw question documents, dropping malformed entries.

    Args:
        test_id: Test the bank belongs to (for logging only).
        raw: Mapping of question id to question document, or a list of
            documents that carry their own ``id``.

    Returns:
        Valid questions in stored order.
    """
    if not raw:
        return []

    if isinstance(raw, dict):
        entries = [
            {**doc, "id": doc.get("id") or question_id}
            if isinstance(doc, dict)
            else doc
            for question_id, doc in raw.items()
        ]
    elif isinstance(raw, list):
        entries = list(raw)
    else:
        logger.warning(f"Question bank for test {test_id} is not a collection")
        return []

    questions: List[Question] = []
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        try:
            questions.append(Question.model_validate(entry))
        except ValidationError as e:
            skipped += 1
            logger.warning(
                f"Skipping malformed question {entry.get('id')!r} in test {test_id}: "
                f"{e.error_count()} validation error(s)"
            )

    if skipped:
        logger.info(
            f"Loaded {len(questions)} questions for test {test_id} "
            f"({skipped} malformed entries skipped)"
        )
    return questions


def check_test_window(definition: TestDefinition, now: datetime) -> None:
    """
    Reject a test requested outside its availability window.

    Raises:
        TestWindowClosedError: If ``now`` is before ``start_time`` or after
            ``end_time``.
    """
    if definition.start_time and now < ensure_timezone_aware(definition.start_time):
        raise TestWindowClosedError(definition.id, not_yet_open=True)
    if definition.end_time and now > ensure_timezone_aware(definition.end_time):
        raise TestWindowClosedError(definition.id, not_yet_open=False)


class QuestionCatalog:
    """Loads test definitions and question banks from the document store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_test(self, test_id: str) -> Optional[TestDefinition]:
        """Return the test definition, or None if it does not exist."""
        raw = await self.store.get(paths.definition(test_id))
        if not raw:
            return None
        data: Dict[str, Any] = {**raw, "id": test_id}
        try:
            return TestDefinition.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid test definition for {test_id}: {e}")
            return None

    async def load_questions(self, test_id: str) -> List[Question]:
        """Return every valid question for the test."""
        raw = await self.store.get(paths.question_bank(test_id))
        return parse_question_bank(test_id, raw)


async def seed_catalog(store: DocumentStore, data: Dict[str, Any]) -> int:
    """
    Write test definitions and question banks into the store.

    Args:
        store: Target store.
        data: ``{"tests": {test_id: definition}, "questions": {test_id: bank}}``.

    Returns:
        Number of test definitions written.
    """
    tests = data.get("tests") or {}
    banks = data.get("questions") or {}
    for test_id, definition in tests.items():
        await store.set(paths.definition(test_id), definition)
    for test_id, bank in banks.items():
        await store.set(paths.question_bank(test_id), bank)
    logger.info(f"Seeded catalog with {len(tests)} tests and {len(banks)} question banks")
    return len(tests)

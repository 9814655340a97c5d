"""
Pytest configuration and shared fixtures for testing.
"""
import random
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from exam_engine.core.config import Settings
from exam_engine.core.exceptions import PersistenceError
from exam_engine.core.session.service import ExamSessionService
from exam_engine.main import app
from exam_engine.schemas.questions import Question
from exam_engine.store import paths
from exam_engine.store.base import DocumentStore, TransactionFn, TransactionResult
from exam_engine.store.memory import InMemoryDocumentStore

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests.

    Tests attach their own session service to ``app.state`` instead of the
    one the production lifespan would build.
    """
    yield


app.router.lifespan_context = _test_lifespan


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FlakyStore(DocumentStore):
    """Wraps a store and fails writes under the given path prefixes."""

    def __init__(
        self,
        inner: DocumentStore,
        fail_prefixes: Iterable[str] = (),
        failures: int = 1,
    ):
        self.inner = inner
        self.fail_prefixes = tuple(fail_prefixes)
        self.failures = failures
        self.failed_paths: List[str] = []

    async def get(self, path: str) -> Any:
        return await self.inner.get(path)

    async def set(self, path: str, value: Any) -> None:
        self._maybe_fail(path)
        await self.inner.set(path, value)

    async def transactional_update(
        self, path: str, fn: TransactionFn
    ) -> TransactionResult:
        self._maybe_fail(path)
        return await self.inner.transactional_update(path, fn)

    def _maybe_fail(self, path: str) -> None:
        if self.failures > 0 and path.startswith(self.fail_prefixes):
            self.failures -= 1
            self.failed_paths.append(path)
            raise PersistenceError(f"write {path}", ConnectionError("store unavailable"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a fast countdown and no violation grace period."""
    return Settings(
        COUNTDOWN_TICK_SECONDS=0.01,
        VIOLATION_GRACE_PERIOD_SECONDS=0,
        CATALOG_SEED_FILE=None,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def make_question():
    """Factory for valid questions."""

    def _make(
        question_id: str,
        difficulty: str = "medium",
        correct_answer: int = 0,
        options: Optional[List[str]] = None,
    ) -> Question:
        return Question(
            id=question_id,
            text=f"Question {question_id}",
            options=options or [f"{question_id}-a", f"{question_id}-b", f"{question_id}-c", f"{question_id}-d"],
            correct_answer=correct_answer,
            difficulty=difficulty,
        )

    return _make


@pytest.fixture
def seed_test(store):
    """Write a test definition and its question bank into the store."""

    async def _seed(
        test_id: str,
        questions: List[Question],
        *,
        is_adaptive: bool = True,
        duration: int = 30,
        target: Optional[DocumentStore] = None,
        **definition: Any,
    ) -> None:
        target = target or store
        doc: Dict[str, Any] = {
            "title": f"Test {test_id}",
            "duration": duration,
            "is_adaptive": is_adaptive,
            "total_questions": len(questions),
            **definition,
        }
        await target.set(paths.definition(test_id), doc)
        await target.set(
            paths.question_bank(test_id),
            {q.id: q.model_dump(mode="json", exclude={"id"}) for q in questions},
        )

    return _seed


@pytest.fixture
def make_flaky_store():
    return FlakyStore


@pytest.fixture
async def service(
    store, test_settings, rng, clock
) -> AsyncGenerator[ExamSessionService, None]:
    """Session service over the in-memory store with a controllable clock."""
    svc = ExamSessionService(store, config=test_settings, rng=rng, clock=clock)
    yield svc
    await svc.shutdown()


@pytest.fixture
async def async_client(service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test session service."""
    app.state.session_service = service
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

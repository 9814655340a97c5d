"""
Tests for the SQL document store, run against a SQLite file through aiosqlite.
"""
import pytest

from exam_engine.core.exceptions import PersistenceError
from exam_engine.models.base import to_async_url
from exam_engine.store.base import ABORT
from exam_engine.store.sql import SQLDocumentStore


@pytest.fixture
async def sql_store(tmp_path):
    store = SQLDocumentStore.from_url(f"sqlite:///{tmp_path / 'documents.db'}")
    await store.create_schema()
    yield store
    await store.close()


class TestToAsyncUrl:
    """Tests for DATABASE_URL conversion."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("sqlite:///./x.db", "sqlite+aiosqlite:///./x.db"),
            ("postgresql://u:p@db_host/exam", "postgresql+asyncpg://u:p@db_host/exam"),
            (
                "postgresql+psycopg2://u:p@host/exam",
                "postgresql+asyncpg://u:p@host/exam",
            ),
            ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ],
    )
    def test_conversion(self, url, expected):
        assert to_async_url(url) == expected

    def test_unsupported(self):
        with pytest.raises(ValueError):
            to_async_url("mysql://u:p@host/exam")


class TestSQLDocumentStore:
    """Tests for SQLDocumentStore reads and writes."""

    async def test_get_missing(self, sql_store):
        assert await sql_store.get("tests/t1") is None

    async def test_round_trip(self, sql_store):
        await sql_store.set("responses/t1/u1", {"score": 2, "answers": {"q1": 0}})

        assert await sql_store.get("responses/t1/u1") == {
            "score": 2,
            "answers": {"q1": 0},
        }

    async def test_overwrite(self, sql_store):
        await sql_store.set("timer_states/u1/t1", {"started_at": "a"})
        await sql_store.set("timer_states/u1/t1", {"started_at": "b"})

        assert await sql_store.get("timer_states/u1/t1") == {"started_at": "b"}

    async def test_read_below_document(self, sql_store):
        await sql_store.set("tests/t1", {"duration": 10, "title": "Algebra"})

        assert await sql_store.get("tests/t1/duration") == 10
        assert await sql_store.get("tests/t1/missing") is None

    async def test_write_below_document_folds_in(self, sql_store):
        await sql_store.set("tests/t1", {"duration": 10})

        await sql_store.set("tests/t1/times_attempted", 3)

        assert await sql_store.get("tests/t1") == {"duration": 10, "times_attempted": 3}

    async def test_read_above_documents_assembles_tree(self, sql_store):
        await sql_store.set("adaptive_states/u1/t1", {"current_difficulty": "hard"})
        await sql_store.set("adaptive_states/u1/t2", {"current_difficulty": "easy"})
        await sql_store.set("adaptive_states/u2/t1", {"current_difficulty": "medium"})

        assert await sql_store.get("adaptive_states/u1") == {
            "t1": {"current_difficulty": "hard"},
            "t2": {"current_difficulty": "easy"},
        }

    async def test_prefix_does_not_match_siblings(self, sql_store):
        """adaptive_states/u1 must not pick up adaptive_states/u10."""
        await sql_store.set("adaptive_states/u10/t1", {"current_difficulty": "hard"})

        assert await sql_store.get("adaptive_states/u1") is None

    async def test_write_above_documents_replaces_them(self, sql_store):
        await sql_store.set("questions/t1/q1", {"text": "old"})

        await sql_store.set("questions/t1", {"q2": {"text": "new"}})

        assert await sql_store.get("questions/t1") == {"q2": {"text": "new"}}
        assert await sql_store.get("questions/t1/q1") is None

    async def test_delete(self, sql_store):
        await sql_store.set("session_progress/u1/t1", {"answers": {}})

        await sql_store.set("session_progress/u1/t1", None)

        assert await sql_store.get("session_progress/u1/t1") is None

    async def test_delete_inside_document(self, sql_store):
        await sql_store.set("tests/t1", {"duration": 10, "times_attempted": 2})

        await sql_store.set("tests/t1/times_attempted", None)

        assert await sql_store.get("tests/t1") == {"duration": 10}

    async def test_transactional_increment(self, sql_store):
        for _ in range(3):
            result = await sql_store.transactional_update(
                "users/u1/tests_completed", lambda current: (current or 0) + 1
            )

        assert result.committed is True
        assert await sql_store.get("users/u1/tests_completed") == 3

    async def test_transactional_abort(self, sql_store):
        await sql_store.set("responses/t1/u1", {"score": 1})

        result = await sql_store.transactional_update("responses/t1/u1", lambda _: ABORT)

        assert result.committed is False
        assert result.value == {"score": 1}
        assert await sql_store.get("responses/t1/u1") == {"score": 1}

    async def test_failing_transaction_raises_persistence_error(self, sql_store):
        await sql_store.set("responses/t1/u1", {"score": 1})

        def explode(_):
            raise RuntimeError("bad update")

        with pytest.raises(PersistenceError) as exc_info:
            await sql_store.transactional_update("responses/t1/u1", explode)

        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert await sql_store.get("responses/t1/u1") == {"score": 1}

    async def test_missing_table_raises_persistence_error(self, tmp_path):
        store = SQLDocumentStore.from_url(f"sqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(PersistenceError):
                await store.get("tests/t1")
        finally:
            await store.close()

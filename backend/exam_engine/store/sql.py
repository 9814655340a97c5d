"""
SQL-backed document store.

Each document is one row of the ``documents`` table keyed by its full path.
A value written beneath an existing document is folded into that document's
JSON; a value written above existing documents replaces them. Reading a path
that has no row of its own assembles the rows stored beneath it into a tree.

Every operation runs inside ``handle_persistence_error`` so callers only see
PersistenceError. Writes run inside ``session.begin()``, which rolls back on
failure. Transactional updates take a row lock where the database supports
``SELECT ... FOR UPDATE``.
"""
import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from exam_engine.core.persistence_error_handling import handle_persistence_error
from exam_engine.models.base import (
    create_engine_for_url,
    create_session_factory,
    create_tables,
)
from exam_engine.models.models import Document
from exam_engine.store.base import (
    ABORT,
    DocumentStore,
    TransactionFn,
    TransactionResult,
    split_path,
)

logger = logging.getLogger(__name__)


def _lineage(path: str) -> List[str]:
    """The path and all of its ancestors, shortest first."""
    segments = split_path(path)
    return ["/".join(segments[:i]) for i in range(1, len(segments) + 1)]


def _relative_segments(ancestor: str, path: str) -> List[str]:
    if ancestor == path:
        return []
    return split_path(path[len(ancestor) + 1 :])


def _set_nested(tree: Dict[str, Any], segments: List[str], value: Any) -> None:
    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    if value is None:
        node.pop(segments[-1], None)
    else:
        node[segments[-1]] = value


class SQLDocumentStore(DocumentStore):
    """Document store backed by the ``documents`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ):
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLDocumentStore":
        """Build a store with its own engine for ``database_url``."""
        engine = create_engine_for_url(database_url, echo=echo)
        return cls(create_session_factory(engine), engine=engine)

    async def create_schema(self) -> None:
        """Create the documents table if it does not exist."""
        if self._engine is None:
            raise RuntimeError("create_schema requires a store built with an engine")
        with handle_persistence_error("create documents table"):
            await create_tables(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def get(self, path: str) -> Any:
        with handle_persistence_error(f"read {path}"):
            async with self._session_factory() as session:
                return await self._read(session, path)

    async def set(self, path: str, value: Any) -> None:
        with handle_persistence_error(f"write {path}"):
            async with self._session_factory() as session:
                async with session.begin():
                    await self._write(session, path, value)

    async def transactional_update(
        self, path: str, fn: TransactionFn
    ) -> TransactionResult:
        with handle_persistence_error(f"update {path}"):
            async with self._session_factory() as session:
                async with session.begin():
                    current = await self._read(session, path, lock=True)
                    new_value = fn(copy.deepcopy(current))
                    if new_value is ABORT:
                        return TransactionResult(committed=False, value=current)
                    await self._write(session, path, new_value)
                    return TransactionResult(
                        committed=True, value=copy.deepcopy(new_value)
                    )

    async def _nearest_row(
        self, session: AsyncSession, path: str, lock: bool = False
    ) -> Optional[Document]:
        """The row stored at ``path`` or its closest ancestor."""
        stmt = select(Document).where(Document.path.in_(_lineage(path)))
        if lock:
            stmt = stmt.with_for_update()
        rows = (await session.execute(stmt)).scalars().all()
        return max(rows, key=lambda row: len(row.path), default=None)

    async def _read(self, session: AsyncSession, path: str, lock: bool = False) -> Any:
        row = await self._nearest_row(session, path, lock=lock)
        if row is not None:
            value: Any = row.value
            for segment in _relative_segments(row.path, path):
                if not isinstance(value, dict) or segment not in value:
                    return None
                value = value[segment]
            return copy.deepcopy(value)

        stmt = select(Document).where(
            Document.path.startswith(f"{path}/", autoescape=True)
        )
        rows = (await session.execute(stmt)).scalars().all()
        if not rows:
            return None
        tree: Dict[str, Any] = {}
        for child in rows:
            _set_nested(
                tree, _relative_segments(path, child.path), copy.deepcopy(child.value)
            )
        return tree

    async def _write(self, session: AsyncSession, path: str, value: Any) -> None:
        row = await self._nearest_row(session, path, lock=True)

        if row is not None and row.path != path:
            container = copy.deepcopy(row.value)
            if not isinstance(container, dict):
                container = {}
            _set_nested(
                container, _relative_segments(row.path, path), copy.deepcopy(value)
            )
            row.value = container
            return

        await session.execute(
            delete(Document).where(
                Document.path.startswith(f"{path}/", autoescape=True)
            )
        )
        if value is None:
            if row is not None:
                await session.delete(row)
        elif row is not None:
            row.value = copy.deepcopy(value)
        else:
            session.add(Document(path=path, value=copy.deepcopy(value)))

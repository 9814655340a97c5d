"""
In-process document store.

Holds the document tree in nested dicts. Values are deep-copied on the way in
and out so callers can never mutate stored state by accident. Suitable for a
single worker and for tests.
"""
import asyncio
import copy
import logging
from typing import Any, Dict

from exam_engine.store.base import (
    ABORT,
    DocumentStore,
    TransactionFn,
    TransactionResult,
    split_path,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Document store backed by a nested dict."""

    def __init__(self, initial: Dict[str, Any] | None = None):
        self._root: Dict[str, Any] = {}
        self._lock = asyncio.Lock()
        for path, value in (initial or {}).items():
            self._write(path, value)

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._read(path))

    async def set(self, path: str, value: Any) -> None:
        async with self._lock:
            self._write(path, value)

    async def transactional_update(
        self, path: str, fn: TransactionFn
    ) -> TransactionResult:
        async with self._lock:
            current = copy.deepcopy(self._read(path))
            new_value = fn(current)
            if new_value is ABORT:
                return TransactionResult(committed=False, value=current)
            self._write(path, new_value)
            return TransactionResult(committed=True, value=copy.deepcopy(new_value))

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole tree."""
        return copy.deepcopy(self._root)

    def _read(self, path: str) -> Any:
        node: Any = self._root
        for segment in split_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        if value is None:
            self._delete(segments)
            return
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[segments[-1]] = copy.deepcopy(value)

    def _delete(self, segments: list) -> None:
        # Walk down remembering parents so empty branches can be pruned
        trail = []
        node: Any = self._root
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)
        for parent, segment in reversed(trail):
            if parent[segment] == {}:
                del parent[segment]
            else:
                break

"""
Key-path document store interface.

Documents are JSON values addressed by slash-separated paths such as
``responses/{test_id}/{user_id}``. Reading a path returns the value stored
there, or the tree of values stored beneath it. Writing ``None`` deletes the
path and everything beneath it.
"""
import abc
from dataclasses import dataclass
from typing import Any, Callable, List


class _Abort:
    """Sentinel type returned by a transaction function to skip the write."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"


ABORT = _Abort()

# Takes the current value (None when absent) and returns the new value,
# None to delete, or ABORT to leave the document untouched.
TransactionFn = Callable[[Any], Any]


@dataclass
class TransactionResult:
    """Outcome of a transactional update."""

    committed: bool
    value: Any


def split_path(path: str) -> List[str]:
    """Split a key path into its segments.

    Raises:
        ValueError: If the path is empty or has an empty segment.
    """
    segments = path.strip("/").split("/")
    if not path.strip("/") or any(not s for s in segments):
        raise ValueError(f"Invalid document path: {path!r}")
    return segments


def join_path(*segments: str) -> str:
    """Join segments into a key path.

    Raises:
        ValueError: If a segment is empty or contains a slash.
    """
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


class DocumentStore(abc.ABC):
    """Async key-path document store.

    Implementations raise PersistenceError for any backend failure.
    """

    @abc.abstractmethod
    async def get(self, path: str) -> Any:
        """Return the value at ``path``, or None when nothing is stored there."""

    @abc.abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Replace the value at ``path``. ``None`` deletes it."""

    @abc.abstractmethod
    async def transactional_update(
        self, path: str, fn: TransactionFn
    ) -> TransactionResult:
        """Atomically read-modify-write the value at ``path``.

        ``fn`` receives the current value and returns the new one (or ABORT).
        No other writer can change ``path`` between the read and the write.
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None

"""
Persistence error handling utilities.

Store adapters wrap every driver call in ``handle_persistence_error`` so that
callers only ever see PersistenceError, whatever backend is configured. The
pattern mirrors the critical-path half of error handling:
1. Execute the wrapped store operation
2. On failure: log with context and raise PersistenceError

Transactions are rolled back by the ``async with session.begin()`` block the
adapter opens, so this module never touches a session.

Usage:
    from exam_engine.core.persistence_error_handling import handle_persistence_error

    with handle_persistence_error("write responses/t1/u1"):
        await session.execute(stmt)

This is distinct from `graceful_failure.py`, which swallows failures of
non-critical follow-up work.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from exam_engine.core.exceptions import PersistenceError


logger = logging.getLogger(__name__)


@contextmanager
def handle_persistence_error(
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Context manager converting store failures into PersistenceError.

    Args:
        operation_name: Human-readable name of the operation for error messages
            and logging (e.g., "read tests/t1", "increment counter").
        log_level: Logging level for error messages. Defaults to logging.ERROR.
        context: Optional extra fields attached to the log record.

    Yields:
        None - the context manager is used for its side effects only.

    Raises:
        PersistenceError: On any exception other than an existing
            PersistenceError, which is re-raised unchanged.
    """
    try:
        yield
    except PersistenceError:
        raise
    except Exception as e:
        logger.log(
            log_level,
            f"Persistence error during {operation_name}: {e}",
            exc_info=True,
            extra=context or {},
        )
        raise PersistenceError(operation_name, e) from e

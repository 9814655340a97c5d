"""
Graceful failure utilities.

This module provides a reusable context manager for non-critical operations
that should not block the main execution flow:
1. Attempting an operation
2. Logging any exceptions with context
3. Continuing execution without raising

Submission uses it for the follow-up work that runs after the response has
been written (attempt counters, clearing transient state, releasing the
integrity lock). A failure there is logged and never undoes the response.

This is distinct from `persistence_error_handling.py`, which handles
critical errors that must reach the caller.

Usage:
    from exam_engine.core.graceful_failure import graceful_failure

    with graceful_failure("increment attempt counter", logger):
        await store.transactional_update(path, increment)

    with graceful_failure(
        "clear timer state", logger, context={"test_id": test_id}
    ):
        await store.set(path, None)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from exam_engine import observability


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Context manager for non-critical operations that should not block execution.

    Args:
        operation_name: Human-readable name of the operation for logging
            (e.g., "increment attempt counter").
        logger: The logger instance to use for logging errors.
        log_level: Logging level for error messages. Defaults to WARNING.
        exc_info: Whether to include exception traceback in log. Defaults to False.
        context: Optional dictionary of additional context to include in log message
            (e.g., {"user_id": "u1", "test_id": "t1"}).

    Yields:
        None - the context manager is used for its side effects only.
    """
    try:
        yield
    except Exception as e:
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"Failed to {operation_name} ({context_str}): {e}"
        else:
            message = f"Failed to {operation_name}: {e}"

        logger.log(log_level, message, exc_info=exc_info)

        # Error tracking must not break graceful failure handling
        try:
            observability.capture_error(
                e,
                context={"operation": operation_name, **(context or {})},
                level="warning",
            )
        except Exception:
            pass

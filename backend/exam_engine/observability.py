"""Sentry error tracking.

Initialization is driven by settings: without SENTRY_DSN every call here is a
cheap no-op, so tests and local runs never talk to Sentry.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from exam_engine.core.config import Settings

logger = logging.getLogger(__name__)

_initialized = False


def init_error_tracking(settings: Settings) -> bool:
    """Initialize the Sentry SDK with FastAPI/Starlette integrations.

    Returns:
        True if Sentry was initialized, False if skipped (no DSN) or failed.

    Note:
        Does not raise exceptions - failures are logged and return False.
    """
    global _initialized

    if not settings.SENTRY_DSN:
        logger.debug("Sentry initialization skipped (DSN not configured)")
        return False

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENV,
            release=settings.APP_VERSION,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            integrations=[
                LoggingIntegration(level=None, event_level=None),
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
            ],
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
        return False

    _initialized = True
    logger.info(
        f"Sentry initialized for environment '{settings.ENV}' "
        f"with {settings.SENTRY_TRACES_SAMPLE_RATE * 100:.0f}% trace sampling"
    )
    return True


def capture_error(
    exception: BaseException,
    *,
    context: dict[str, Any] | None = None,
    level: str = "error",
    tags: dict[str, str] | None = None,
) -> str | None:
    """Capture an exception and send it to Sentry.

    Args:
        exception: The exception to capture.
        context: Additional context attached under the "exam_engine" key.
        level: Severity ("debug", "info", "warning", "error", "fatal").
        tags: Tags for categorization and filtering in Sentry.

    Returns:
        The Sentry event id, or None when Sentry is not initialized.
    """
    if not _initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        scope.level = level
        if context:
            scope.set_context("exam_engine", {k: str(v) for k, v in context.items()})
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(exception)


def shutdown(timeout: float = 2.0) -> None:
    """Flush pending events before the process exits."""
    if _initialized:
        sentry_sdk.flush(timeout=timeout)

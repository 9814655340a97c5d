"""
Per-session countdown.

Runs as an asyncio task that wakes once per tick, recomputes the remaining
time from the session's start time, and calls ``on_expire`` once the
remaining time reaches zero. Cancelling the task (``cancel``) stops it
immediately; the session cancels it the moment it finalizes.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from exam_engine.core.datetime_utils import utc_now
from exam_engine.core.session.timing import remaining_seconds

logger = logging.getLogger(__name__)


class SessionCountdown:
    """Ticks a session's remaining time and fires expiry once."""

    def __init__(
        self,
        started_at: datetime,
        duration_minutes: int,
        on_expire: Callable[[], Awaitable[None]],
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
        name: str = "session-countdown",
    ):
        self.started_at = started_at
        self.duration_minutes = duration_minutes
        self.on_expire = on_expire
        self.tick_seconds = tick_seconds
        self.clock = clock
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def remaining_seconds(self) -> int:
        return remaining_seconds(self.started_at, self.duration_minutes, self.clock())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the countdown on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        """Stop the countdown. Safe to call from the expiry callback itself."""
        if self._task is None or self._task.done():
            return
        if self._task is asyncio.current_task():
            return
        self._task.cancel()

    async def wait(self) -> None:
        """Wait for the countdown task to finish (expired or cancelled)."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while self.remaining_seconds > 0:
            await asyncio.sleep(self.tick_seconds)

        logger.info(f"Countdown {self.name} reached zero")
        try:
            await self.on_expire()
        except Exception:
            logger.exception(f"Expiry handler for {self.name} failed")

"""
Integrity monitor adapter.

The proctoring client reports violations (leaving fullscreen, switching tabs,
...). The monitor counts them, ignoring reports inside the grace period after
tracking starts and any report after release. Every counted report fires
``on_violation(violation_type, count)``; reaching ``max_violations`` fires
``on_max_violations_reached()`` exactly once, which the session answers with
a forced, zero-score termination.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from exam_engine.core.datetime_utils import utc_now
from exam_engine.models.models import ViolationType

logger = logging.getLogger(__name__)

DEFAULT_MAX_VIOLATIONS = 3
DEFAULT_GRACE_PERIOD_SECONDS = 10


@dataclass
class ViolationRecord:
    """A counted violation."""

    violation_type: ViolationType
    description: Optional[str]
    timestamp: datetime
    count: int


class IntegrityMonitor:
    """Counts integrity violations for one live session."""

    def __init__(
        self,
        max_violations: int = DEFAULT_MAX_VIOLATIONS,
        grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS,
        on_violation: Optional[Callable[[ViolationType, int], Awaitable[None]]] = None,
        on_max_violations_reached: Optional[Callable[[], Awaitable[None]]] = None,
        clock: Callable[[], datetime] = utc_now,
        context: str = "",
    ):
        self.max_violations = max_violations
        self.grace_period = timedelta(seconds=grace_period_seconds)
        self.on_violation = on_violation
        self.on_max_violations_reached = on_max_violations_reached
        self.clock = clock
        self.context = context
        self.tracking_since = clock()
        self.violations: List[ViolationRecord] = []
        self.released = False
        self._threshold_fired = False

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    @property
    def in_grace_period(self) -> bool:
        return self.clock() - self.tracking_since < self.grace_period

    async def record_violation(
        self, violation_type: ViolationType, description: Optional[str] = None
    ) -> bool:
        """
        Count a reported violation.

        Returns:
            True if the report was counted, False if it was ignored.
        """
        if self.released:
            return False
        if self.in_grace_period:
            logger.debug(
                f"Ignoring {violation_type.value} during grace period {self.context}"
            )
            return False

        record = ViolationRecord(
            violation_type=violation_type,
            description=description,
            timestamp=self.clock(),
            count=self.violation_count + 1,
        )
        self.violations.append(record)
        logger.warning(
            f"Integrity violation {record.count}/{self.max_violations} "
            f"({violation_type.value}) {self.context}"
        )

        if self.on_violation is not None:
            await self.on_violation(violation_type, record.count)

        if record.count >= self.max_violations and not self._threshold_fired:
            # Latch only once the handler succeeds so a failed termination
            # is retried on the next report
            if self.on_max_violations_reached is not None:
                await self.on_max_violations_reached()
            self._threshold_fired = True
        return True

    def release(self) -> None:
        """Stop tracking. Later reports are ignored."""
        self.released = True

"""
Session lifecycle: timing, countdown, submission, integrity, orchestration.
"""
from .service import ExamSessionService, LiveSession
from .timing import TimingAction, TimingDecision, resolve_timing

__all__ = [
    "ExamSessionService",
    "LiveSession",
    "TimingAction",
    "TimingDecision",
    "resolve_timing",
]

"""
Pydantic schemas for persisted documents and request/response validation.
"""
from .questions import PublicQuestion, Question, TestDefinition
from .responses import DetailedAnswer, ExamResponse
from .sessions import (
    AdaptiveSessionState,
    AnswerRequest,
    DifficultyFlowEntry,
    SessionProgress,
    SessionTimerState,
    SessionView,
    SubmitRequest,
    ViolationReport,
    ViolationStatus,
)

__all__ = [
    "PublicQuestion",
    "Question",
    "TestDefinition",
    "DetailedAnswer",
    "ExamResponse",
    "AdaptiveSessionState",
    "AnswerRequest",
    "DifficultyFlowEntry",
    "SessionProgress",
    "SessionTimerState",
    "SessionView",
    "SubmitRequest",
    "ViolationReport",
    "ViolationStatus",
]

"""
Pydantic schemas for persisted session state and session endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from exam_engine.models.models import DifficultyLevel, SessionPhase, ViolationType
from exam_engine.schemas.questions import PublicQuestion
from exam_engine.schemas.responses import ExamResponse


class DifficultyFlowEntry(BaseModel):
    """One answered question in the chronological difficulty log."""

    timestamp: datetime
    difficulty: DifficultyLevel = Field(
        ..., description="Difficulty the question was served at"
    )
    question_id: str
    was_correct: bool
    response_time_ms: int = Field(..., ge=0)


class AdaptiveSessionState(BaseModel):
    """Persisted adaptive difficulty state for one (user, test) pair."""

    user_id: str
    test_id: str
    current_difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    correct_streak: int = Field(0, ge=0)
    wrong_streak: int = Field(0, ge=0)
    asked_question_ids: List[str] = Field(default_factory=list)
    score: int = Field(0, ge=0, description="Raw count of correct answers")
    weighted_score: int = Field(0, ge=0, description="Sum of difficulty weights")
    difficulty_flow: List[DifficultyFlowEntry] = Field(default_factory=list)
    started_at: datetime
    last_question_at: datetime
    completed_at: Optional[datetime] = None


class SessionTimerState(BaseModel):
    """Persisted timer anchor. Remaining time is always derived from it."""

    started_at: datetime


class SessionProgress(BaseModel):
    """Transient answer sheet and delivery layout kept across reloads."""

    answers: Dict[str, int] = Field(default_factory=dict)
    pending_question_id: Optional[str] = None
    question_order: List[str] = Field(default_factory=list)
    option_orders: Dict[str, List[int]] = Field(
        default_factory=dict,
        description="Per question: original option index shown at each position",
    )


# ==============================================================================
# Endpoint schemas
# ==============================================================================


class SessionView(BaseModel):
    """Schema describing a session as seen by the client."""

    test_id: str = Field(..., description="Test ID")
    phase: SessionPhase = Field(..., description="Lifecycle phase")
    is_adaptive: bool = Field(..., description="Whether delivery adapts difficulty")
    duration_minutes: int = Field(..., description="Test duration in minutes")
    remaining_seconds: int = Field(..., description="Seconds left on the countdown")
    resumed: bool = Field(False, description="Whether a persisted session was resumed")
    already_completed: bool = Field(
        False, description="Whether a complete prior response already exists"
    )
    current_difficulty: Optional[DifficultyLevel] = Field(
        None, description="Current difficulty (only for adaptive sessions)"
    )
    current_question: Optional[PublicQuestion] = Field(
        None, description="Question awaiting an answer (only for adaptive sessions)"
    )
    questions: Optional[List[PublicQuestion]] = Field(
        None, description="Shuffled question list (only for fixed-order sessions)"
    )
    answers: Dict[str, int] = Field(
        default_factory=dict, description="Answers recorded so far"
    )
    total_questions: int = Field(0, description="Number of questions in the session")
    violation_count: int = Field(0, description="Counted integrity violations")
    response: Optional[ExamResponse] = Field(
        None, description="Final response once the session is finalized"
    )


class AnswerRequest(BaseModel):
    """Schema for answering one question."""

    question_id: str = Field(..., min_length=1, description="Question ID")
    selected_index: int = Field(..., ge=0, description="Index of the chosen option")
    response_time_ms: Optional[int] = Field(
        None,
        ge=0,
        description="Time spent on the question; derived server-side when omitted",
    )

    @field_validator("question_id")
    @classmethod
    def strip_question_id(cls, v: str) -> str:
        return v.strip()


class SubmitRequest(BaseModel):
    """Schema for an explicit submission."""

    allow_incomplete: bool = Field(
        False,
        description="Submit a fixed-order test even if some questions are unanswered",
    )


class ViolationReport(BaseModel):
    """Schema for an integrity violation reported by the proctoring client."""

    violation_type: ViolationType = Field(..., description="Violation category")
    description: Optional[str] = Field(
        None, max_length=500, description="Human-readable detail"
    )


class ViolationStatus(BaseModel):
    """Schema for the integrity monitor's state after a report."""

    counted: bool = Field(..., description="Whether the report was counted")
    violation_count: int = Field(..., description="Cumulative counted violations")
    max_violations: int = Field(..., description="Threshold for forced termination")
    terminated: bool = Field(..., description="Whether the session was terminated")
    response: Optional[ExamResponse] = Field(
        None, description="Final response when the report terminated the session"
    )

"""
Pydantic schemas for final exam responses.
"""
from typing import Dict, Optional

from pydantic import BaseModel, Field

from exam_engine.models.models import DifficultyLevel


class DetailedAnswer(BaseModel):
    """Per-question record stored with a final response."""

    selected_index: int
    selected_value: str
    is_correct: bool


class ExamResponse(BaseModel):
    """The final, immutable record of a completed session."""

    test_id: str = Field(..., description="Test ID")
    user_id: str = Field(..., description="User ID")
    score: int = Field(..., ge=0, description="Number of correct answers (0 if terminated)")
    total_questions: int = Field(..., gt=0, description="Questions in the session")
    answers: Dict[str, int] = Field(..., description="Selected option per question")
    detailed_answers: Dict[str, DetailedAnswer] = Field(
        ..., description="Selected value and correctness per question"
    )
    completed_at: str = Field(..., description="ISO-8601 completion timestamp")
    time_spent: int = Field(..., ge=0, description="Seconds spent in the session")
    terminated_due_to_violations: bool = Field(
        False, description="Whether integrity violations ended the session"
    )
    is_adaptive: bool = Field(False, description="Whether delivery adapted difficulty")
    weighted_score: Optional[int] = Field(
        None, description="Difficulty-weighted score (only for adaptive sessions)"
    )
    final_difficulty: Optional[DifficultyLevel] = Field(
        None, description="Difficulty at completion (only for adaptive sessions)"
    )

"""
Pydantic schemas for catalog questions and test definitions.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from exam_engine.models.models import DifficultyLevel, QuestionType

MIN_OPTIONS = 4
MAX_OPTIONS = 5


class Question(BaseModel):
    """A multiple-choice catalog question, including its answer key."""

    id: str = Field(..., min_length=1, description="Question ID")
    question_type: QuestionType = Field(
        QuestionType.TEXT, description="Content type (text, image, code)"
    )
    text: str = Field(..., description="Question stem")
    image_url: Optional[str] = Field(None, description="Image for image questions")
    code_content: Optional[str] = Field(None, description="Snippet for code questions")
    code_language: str = Field("javascript", description="Language of the snippet")
    options: List[str] = Field(
        ...,
        min_length=MIN_OPTIONS,
        max_length=MAX_OPTIONS,
        description="Answer options",
    )
    correct_answer: int = Field(..., ge=0, description="Index of the correct option")
    difficulty: DifficultyLevel = Field(
        DifficultyLevel.MEDIUM, description="Difficulty level"
    )
    topic: Optional[str] = Field(None, description="Topic tag")

    @field_validator("difficulty", mode="before")
    @classmethod
    def default_missing_difficulty(cls, v):
        """Questions authored without a difficulty are treated as medium."""
        if v is None or v == "":
            return DifficultyLevel.MEDIUM
        return v

    @field_validator("code_language", mode="before")
    @classmethod
    def default_missing_language(cls, v):
        return v or "javascript"

    @field_validator("correct_answer", mode="before")
    @classmethod
    def reject_non_integer_answer(cls, v):
        # bool is an int subclass and numeric strings would coerce silently
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("correct_answer must be an integer index")
        return v

    @model_validator(mode="after")
    def validate_answer_in_range(self) -> "Question":
        if self.correct_answer >= len(self.options):
            raise ValueError(
                f"correct_answer {self.correct_answer} out of range for "
                f"{len(self.options)} options"
            )
        return self

    def to_public(self) -> "PublicQuestion":
        """Strip the answer key for delivery to a test-taker."""
        return PublicQuestion(
            id=self.id,
            question_type=self.question_type,
            text=self.text,
            image_url=self.image_url,
            code_content=self.code_content,
            code_language=self.code_language,
            options=list(self.options),
            difficulty=self.difficulty,
            topic=self.topic,
        )


class PublicQuestion(BaseModel):
    """Schema for a question as shown to a test-taker (no answer key)."""

    id: str
    question_type: QuestionType
    text: str
    image_url: Optional[str] = None
    code_content: Optional[str] = None
    code_language: str = "javascript"
    options: List[str]
    difficulty: DifficultyLevel
    topic: Optional[str] = None


class TestDefinition(BaseModel):
    """Schema for a test definition (read-only apart from its attempt counter)."""

    __test__ = False

    id: str = Field(..., description="Test ID")
    title: str = Field("", description="Display title")
    duration: int = Field(..., gt=0, description="Duration in minutes")
    start_time: Optional[datetime] = Field(None, description="Window opening time")
    end_time: Optional[datetime] = Field(None, description="Window closing time")
    is_adaptive: bool = Field(False, description="Whether delivery adapts difficulty")
    total_questions: int = Field(0, ge=0, description="Declared question count")
    times_attempted: int = Field(0, ge=0, description="Completed attempt counter")

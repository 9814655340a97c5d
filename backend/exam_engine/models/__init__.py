"""
Models package for the exam engine.
"""
from .base import Base, create_engine_for_url, create_session_factory, create_tables
from .models import (
    Document,
    DifficultyLevel,
    QuestionType,
    SessionPhase,
    ViolationType,
)

__all__ = [
    "Base",
    "create_engine_for_url",
    "create_session_factory",
    "create_tables",
    "Document",
    "DifficultyLevel",
    "QuestionType",
    "SessionPhase",
    "ViolationType",
]

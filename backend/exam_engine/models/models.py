"""
Database models and shared enumerations for the exam engine.

The engine persists every record (adaptive state, timer state, responses,
counters, catalog) as a JSON document addressed by a slash-separated key
path. The SQL backend stores one row per document.
"""
from sqlalchemy import Column, DateTime, String, JSON
from datetime import datetime, timezone
import enum

from .base import Base


class DifficultyLevel(str, enum.Enum):
    """Difficulty level enumeration."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, enum.Enum):
    """Question content type enumeration."""

    TEXT = "text"
    IMAGE = "image"
    CODE = "code"


class SessionPhase(str, enum.Enum):
    """Lifecycle phase of a live exam session."""

    ACTIVE = "active"
    SUBMITTING = "submitting"
    FINALIZED = "finalized"
    EXPIRED = "expired"


class ViolationType(str, enum.Enum):
    """Integrity violation categories reported by the proctoring client."""

    FULLSCREEN_EXIT = "fullscreen_exit"
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    COPY_PASTE_ATTEMPT = "copy_paste_attempt"
    CONTEXT_MENU = "context_menu"
    KEYBOARD_SHORTCUT = "keyboard_shortcut"
    DEVTOOLS_OPEN = "devtools_open"


class Document(Base):
    """A JSON document stored at a unique key path."""

    __tablename__ = "documents"

    path = Column(String(512), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Document(path={self.path!r})>"

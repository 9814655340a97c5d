"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Literal, Optional, Self

from exam_engine.models.models import DifficultyLevel


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Adaptive Exam Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Persistence
    # "memory" keeps every document in process (single worker, tests);
    # "sql" stores documents in the database named by DATABASE_URL.
    STORE_BACKEND: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = "sqlite:///./exam_engine.db"
    # Optional JSON file of {"tests": {...}, "questions": {...}} loaded into
    # the store at startup
    CATALOG_SEED_FILE: Optional[str] = None

    # Session timing
    # A persisted session with this many seconds or fewer remaining is treated
    # as expired on re-entry and restarted with the full duration.
    RESUME_FORGIVENESS_SECONDS: int = Field(default=30, ge=0)
    COUNTDOWN_TICK_SECONDS: float = Field(default=1.0, gt=0)
    # Finished sessions kept in memory so late events still see their outcome
    FINISHED_SESSION_CACHE_SIZE: int = Field(default=256, ge=0)

    # Integrity monitoring
    MAX_VIOLATIONS: int = Field(default=3, ge=1)
    VIOLATION_GRACE_PERIOD_SECONDS: int = Field(
        default=10,
        ge=0,
        description="Violations reported this soon after session start are ignored",
    )

    # Adaptive difficulty
    CORRECT_STREAK_THRESHOLD: int = Field(default=1, ge=1)
    WRONG_STREAK_THRESHOLD: int = Field(default=2, ge=1)
    DIFFICULTY_WEIGHTS: Dict[str, int] = {
        "easy": 1,
        "medium": 2,
        "hard": 3,
    }
    INITIAL_DIFFICULTY: DifficultyLevel = DifficultyLevel.MEDIUM
    HISTORY_WINDOW: int = Field(
        default=3,
        ge=1,
        description="Number of completed sessions averaged for the starting difficulty",
    )
    SKIP_LEVEL_WINDOW: int = Field(default=5, ge=1)
    SKIP_LEVEL_MIN_CORRECT: int = Field(default=4, ge=1)
    MIN_QUESTIONS_PER_DIFFICULTY: int = Field(default=5, ge=0)

    # Error tracking (Sentry)
    SENTRY_DSN: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_difficulty_weights(self) -> Self:
        """Validate DIFFICULTY_WEIGHTS: one positive weight per difficulty level."""
        weights = self.DIFFICULTY_WEIGHTS
        expected_levels = {level.value for level in DifficultyLevel}
        if set(weights.keys()) != expected_levels:
            raise ValueError(
                f"DIFFICULTY_WEIGHTS keys must be {sorted(expected_levels)}, "
                f"got {sorted(weights.keys())}"
            )
        non_positive = [k for k, v in weights.items() if v <= 0]
        if non_positive:
            raise ValueError(
                f"All difficulty weights must be positive, got non-positive: {non_positive}"
            )
        return self

    @model_validator(mode="after")
    def validate_skip_level_rule(self) -> Self:
        """The skip-level rule cannot demand more correct answers than it inspects."""
        if self.SKIP_LEVEL_MIN_CORRECT > self.SKIP_LEVEL_WINDOW:
            raise ValueError(
                f"SKIP_LEVEL_MIN_CORRECT ({self.SKIP_LEVEL_MIN_CORRECT}) cannot exceed "
                f"SKIP_LEVEL_WINDOW ({self.SKIP_LEVEL_WINDOW})"
            )
        return self


settings = Settings()

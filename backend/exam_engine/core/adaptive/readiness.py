"""
Adaptive readiness evaluation.

Checks whether a test's question bank can sustain adaptive delivery. Any
non-empty bank is usable (the selector falls back across difficulties), but
a level with fewer than the recommended number of questions will be
exhausted early and produce a warning.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from exam_engine.models.models import DifficultyLevel
from exam_engine.schemas.questions import Question

logger = logging.getLogger(__name__)


@dataclass
class DifficultyStats:
    """Question counts per difficulty level."""

    easy: int = 0
    medium: int = 0
    hard: int = 0

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard

    def as_dict(self) -> Dict[str, int]:
        return {
            DifficultyLevel.EASY.value: self.easy,
            DifficultyLevel.MEDIUM.value: self.medium,
            DifficultyLevel.HARD.value: self.hard,
        }


@dataclass
class AdaptiveReadinessResult:
    """Whether a bank supports adaptive delivery, with warnings."""

    is_valid: bool
    stats: DifficultyStats
    min_per_difficulty: int
    warnings: List[str] = field(default_factory=list)


def count_by_difficulty(questions: Sequence[Question]) -> DifficultyStats:
    """Count questions per difficulty level."""
    stats = DifficultyStats()
    for question in questions:
        if question.difficulty == DifficultyLevel.EASY:
            stats.easy += 1
        elif question.difficulty == DifficultyLevel.HARD:
            stats.hard += 1
        else:
            stats.medium += 1
    return stats


def evaluate_adaptive_readiness(
    questions: Sequence[Question], min_per_difficulty: int = 5
) -> AdaptiveReadinessResult:
    """
    Evaluate a question bank for adaptive delivery.

    Args:
        questions: Valid questions of the test.
        min_per_difficulty: Recommended minimum per difficulty level.

    Returns:
        AdaptiveReadinessResult; ``is_valid`` is False only for an empty bank.
    """
    stats = count_by_difficulty(questions)
    warnings: List[str] = []

    for level, count in stats.as_dict().items():
        if count < min_per_difficulty:
            warnings.append(
                f"Only {count} {level} questions (recommended: {min_per_difficulty}+)"
            )

    if stats.total == 0:
        warnings.append("Test has no valid questions")

    result = AdaptiveReadinessResult(
        is_valid=stats.total > 0,
        stats=stats,
        min_per_difficulty=min_per_difficulty,
        warnings=warnings,
    )
    if warnings:
        logger.debug(f"Adaptive readiness warnings: {'; '.join(warnings)}")
    return result

"""
Adaptive difficulty: transitions, persisted state, question selection.
"""
from .difficulty import DifficultyPolicy, Outcome, apply_answer
from .engine import AdaptiveDifficultyEngine
from .selection import QuestionSelector, choose_next_question

__all__ = [
    "DifficultyPolicy",
    "Outcome",
    "apply_answer",
    "AdaptiveDifficultyEngine",
    "QuestionSelector",
    "choose_next_question",
]

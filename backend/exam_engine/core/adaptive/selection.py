"""
Question selection for adaptive and fixed-order delivery.

Adaptive selection runs an ordered list of candidate strategies and stops at
the first that yields any unseen question:
1. Unseen questions at the current difficulty
2. Unseen questions at the fallback difficulties, nearest first
   (easy -> medium, hard; medium -> easy, hard; hard -> medium, easy)
3. Any unseen question regardless of difficulty
4. Nothing left: return None, the signal to finalize the session

The pick among the winning candidates is uniform, drawn from an injectable
``random.Random`` so tests can seed it.

Fixed-order tests skip all of this: the questions are shuffled once, each
question's options are shuffled with the answer key remapped, and the
resulting layout is delivered in order.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from exam_engine.core.catalog import QuestionCatalog
from exam_engine.models.models import DifficultyLevel
from exam_engine.schemas.questions import Question
from exam_engine.schemas.sessions import AdaptiveSessionState

logger = logging.getLogger(__name__)

FALLBACK_ORDER: Dict[DifficultyLevel, List[DifficultyLevel]] = {
    DifficultyLevel.EASY: [DifficultyLevel.MEDIUM, DifficultyLevel.HARD],
    DifficultyLevel.MEDIUM: [DifficultyLevel.EASY, DifficultyLevel.HARD],
    DifficultyLevel.HARD: [DifficultyLevel.MEDIUM, DifficultyLevel.EASY],
}

# A strategy yields candidate sets in preference order
SelectionStrategy = Callable[
    [Sequence[Question], AdaptiveSessionState], Iterator[List[Question]]
]


def _unseen(pool: Sequence[Question], state: AdaptiveSessionState) -> List[Question]:
    asked = set(state.asked_question_ids)
    return [q for q in pool if q.id not in asked]


def exact_difficulty(
    pool: Sequence[Question], state: AdaptiveSessionState
) -> Iterator[List[Question]]:
    yield [q for q in _unseen(pool, state) if q.difficulty == state.current_difficulty]


def fallback_difficulty(
    pool: Sequence[Question], state: AdaptiveSessionState
) -> Iterator[List[Question]]:
    unseen = _unseen(pool, state)
    for level in FALLBACK_ORDER[state.current_difficulty]:
        yield [q for q in unseen if q.difficulty == level]


def any_unseen(
    pool: Sequence[Question], state: AdaptiveSessionState
) -> Iterator[List[Question]]:
    yield _unseen(pool, state)


DEFAULT_STRATEGIES: List[SelectionStrategy] = [
    exact_difficulty,
    fallback_difficulty,
    any_unseen,
]


def choose_next_question(
    pool: Sequence[Question],
    state: AdaptiveSessionState,
    rng: Optional[random.Random] = None,
    strategies: Sequence[SelectionStrategy] = DEFAULT_STRATEGIES,
) -> Optional[Question]:
    """
    Pick the next adaptive question from a pool.

    Args:
        pool: All valid questions of the test.
        state: Current adaptive state.
        rng: Random source for the final pick. Pass a seeded instance for
            reproducible selection.
        strategies: Candidate generators, evaluated lazily in order.

    Returns:
        The chosen question, or None when every question has been asked.
    """
    rng = rng or random.Random()

    for strategy in strategies:
        for candidates in strategy(pool, state):
            if candidates:
                if strategy is not exact_difficulty:
                    logger.debug(
                        f"No unseen {state.current_difficulty.value} question for "
                        f"test {state.test_id}, using {strategy.__name__}"
                    )
                return rng.choice(candidates)

    logger.info(
        f"Question pool exhausted for user {state.user_id} on test {state.test_id} "
        f"after {len(state.asked_question_ids)} questions"
    )
    return None


class QuestionSelector:
    """Selects adaptive questions from a test's catalog."""

    def __init__(
        self,
        catalog: QuestionCatalog,
        rng: Optional[random.Random] = None,
        strategies: Sequence[SelectionStrategy] = DEFAULT_STRATEGIES,
    ):
        self.catalog = catalog
        self.rng = rng or random.Random()
        self.strategies = list(strategies)

    async def select_next(
        self, test_id: str, state: AdaptiveSessionState
    ) -> Optional[Question]:
        """Load the test's questions and choose the next one for ``state``."""
        pool = await self.catalog.load_questions(test_id)
        return self.choose(pool, state)

    def choose(
        self, pool: Sequence[Question], state: AdaptiveSessionState
    ) -> Optional[Question]:
        """Choose from an already-loaded pool."""
        return choose_next_question(pool, state, self.rng, self.strategies)


# =============================================================================
# Fixed-order delivery
# =============================================================================


@dataclass
class FixedLayout:
    """Shuffled delivery order for a non-adaptive session.

    Attributes:
        question_order: Question ids in delivery order.
        option_orders: For each question, the original option index shown at
            each displayed position.
    """

    question_order: List[str]
    option_orders: Dict[str, List[int]]


def shuffle_layout(
    questions: Sequence[Question], rng: Optional[random.Random] = None
) -> FixedLayout:
    """Shuffle question order and each question's options independently."""
    rng = rng or random.Random()

    order = [q.id for q in questions]
    rng.shuffle(order)

    option_orders: Dict[str, List[int]] = {}
    for question in questions:
        permutation = list(range(len(question.options)))
        rng.shuffle(permutation)
        option_orders[question.id] = permutation

    return FixedLayout(question_order=order, option_orders=option_orders)


def apply_layout(questions: Sequence[Question], layout: FixedLayout) -> List[Question]:
    """
    Materialize a layout: reorder questions and remap their options.

    Questions missing from the layout (or whose stored permutation no longer
    fits) are dropped from or appended to the result unchanged, so a catalog
    edit mid-session cannot break delivery.

    Returns:
        Questions in delivery order, with ``options`` and ``correct_answer``
        rewritten to the shuffled positions.
    """
    by_id = {q.id: q for q in questions}
    arranged: List[Question] = []

    for question_id in layout.question_order:
        question = by_id.pop(question_id, None)
        if question is None:
            continue
        permutation = layout.option_orders.get(question_id)
        if permutation is None or sorted(permutation) != list(
            range(len(question.options))
        ):
            arranged.append(question)
            continue
        arranged.append(
            question.model_copy(
                update={
                    "options": [question.options[i] for i in permutation],
                    "correct_answer": permutation.index(question.correct_answer),
                }
            )
        )

    arranged.extend(by_id.values())
    return arranged

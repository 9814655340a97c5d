"""
Domain exceptions raised by the exam session engine.

Every error the engine raises derives from ExamEngineError so the HTTP layer
can translate them in one place. NoQuestionsAvailable and
IncompletePriorResponse are recovery signals handled inside the engine and
never reach a client.
"""
from typing import List, Optional


class ExamEngineError(Exception):
    """Base class for exam engine errors."""


class StateNotFoundError(ExamEngineError):
    """Adaptive session state is missing when an answer is processed."""

    def __init__(self, user_id: str, test_id: str):
        self.user_id = user_id
        self.test_id = test_id
        super().__init__(
            f"No adaptive state for user {user_id} on test {test_id}"
        )


class NoQuestionsAvailable(ExamEngineError):
    """The selector has no unseen question left for the session."""


class IncompletePriorResponse(ExamEngineError):
    """A persisted response exists but fails the completeness check."""

    def __init__(self, test_id: str, user_id: str, reasons: List[str]):
        self.test_id = test_id
        self.user_id = user_id
        self.reasons = reasons
        super().__init__(
            f"Prior response for user {user_id} on test {test_id} is incomplete: "
            f"{', '.join(reasons)}"
        )


class PersistenceError(ExamEngineError):
    """A store read or write failed.

    Wraps the underlying driver error together with the operation that was
    being attempted. Never retried automatically.

    Attributes:
        operation_name: Human-readable name of the operation that failed
        original_error: The underlying exception, if any
        message: The formatted error message
    """

    def __init__(
        self,
        operation_name: str,
        original_error: Optional[Exception] = None,
        message: Optional[str] = None,
    ):
        self.operation_name = operation_name
        self.original_error = original_error
        self.message = message or f"Failed to {operation_name}: {original_error}"
        super().__init__(self.message)


class TestNotFoundError(ExamEngineError):
    """No test definition exists for the requested id."""

    __test__ = False  # keep pytest from collecting this as a test class

    def __init__(self, test_id: str):
        self.test_id = test_id
        super().__init__(f"Test {test_id} not found")


class TestWindowClosedError(ExamEngineError):
    """The test is requested outside its availability window."""

    __test__ = False

    def __init__(self, test_id: str, not_yet_open: bool):
        self.test_id = test_id
        self.not_yet_open = not_yet_open
        state = "not yet available" if not_yet_open else "closed"
        super().__init__(f"Test {test_id} is {state}")


class EmptyQuestionBankError(ExamEngineError):
    """The test has no valid questions to serve."""

    def __init__(self, test_id: str):
        self.test_id = test_id
        super().__init__(f"Test {test_id} has no valid questions")


class SessionNotActiveError(ExamEngineError):
    """No live session exists for the (user, test) pair."""

    def __init__(self, user_id: str, test_id: str):
        self.user_id = user_id
        self.test_id = test_id
        super().__init__(f"No active session for user {user_id} on test {test_id}")


class InvalidAnswerError(ExamEngineError):
    """The answer refers to an unknown question or an out-of-range option."""


class DuplicateAnswerError(ExamEngineError):
    """An adaptive question was answered a second time."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id} has already been answered")


class NoAnswersError(ExamEngineError):
    """Submission attempted with no answers and no forced score."""


class IncompleteAnswersError(ExamEngineError):
    """A fixed-order test was submitted with unanswered questions."""

    def __init__(self, unanswered_positions: List[int]):
        self.unanswered_positions = unanswered_positions
        super().__init__(
            f"{len(unanswered_positions)} question(s) unanswered: "
            f"{', '.join(str(p) for p in unanswered_positions)}"
        )

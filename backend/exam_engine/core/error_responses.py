"""
Standardized error response messages and builders.

This module provides consistent error messages and HTTPException builders
for the API. Domain exceptions raised by the session engine are translated
here so endpoints stay free of status-code bookkeeping.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: abc)"
- Use "Please try again." for transient persistence failures

Usage:
    from exam_engine.core.error_responses import ErrorMessages, raise_not_found

    if test is None:
        raise_not_found(ErrorMessages.test_not_found(test_id))

    try:
        view = await service.submit(user_id, test_id)
    except ExamEngineError as e:
        raise_for_engine_error(e)
"""

from typing import NoReturn

from fastapi import HTTPException, status

from exam_engine.core.exceptions import (
    DuplicateAnswerError,
    EmptyQuestionBankError,
    ExamEngineError,
    IncompleteAnswersError,
    InvalidAnswerError,
    NoAnswersError,
    PersistenceError,
    SessionNotActiveError,
    StateNotFoundError,
    TestNotFoundError,
    TestWindowClosedError,
)


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    MISSING_USER_ID = "Missing X-User-ID header."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    RESULT_NOT_FOUND = "Test result not found."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    SESSION_NOT_ACTIVE = (
        "No active session for this test. Please start or resume the test first."
    )
    ADAPTIVE_STATE_MISSING = (
        "Adaptive session state was not found. Please restart the test."
    )

    # ==========================================================================
    # Bad Request Errors (400)
    # ==========================================================================
    NO_ANSWERS = "Please answer at least one question before submitting."

    # ==========================================================================
    # Server Errors (503)
    # ==========================================================================
    SUBMISSION_SAVE_FAILED = "Failed to save your progress. Please try again."

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def test_not_found(test_id: str) -> str:
        return f"Test not found (ID: {test_id})."

    @staticmethod
    def test_window_closed(not_yet_open: bool) -> str:
        if not_yet_open:
            return "This test is not available yet."
        return "This test has ended."

    @staticmethod
    def empty_question_bank(test_id: str) -> str:
        return f"No valid questions are available for this test (ID: {test_id})."

    @staticmethod
    def unanswered_questions(positions: list) -> str:
        """Message listing 1-based positions of unanswered questions."""
        joined = ", ".join(str(p) for p in positions)
        return f"Please answer all questions before submitting. Unanswered: {joined}."

    @staticmethod
    def already_answered(question_id: str) -> str:
        return f"Question has already been answered (ID: {question_id})."


# ==============================================================================
# HTTPException Builder Functions
# ==============================================================================


def raise_bad_request(detail: str) -> NoReturn:
    """Raise a 400 Bad Request exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 400 Bad Request
    """
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )


def raise_unauthorized(detail: str) -> NoReturn:
    """Raise a 401 Unauthorized exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 401 Unauthorized
    """
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


def raise_forbidden(detail: str) -> NoReturn:
    """Raise a 403 Forbidden exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 403 Forbidden
    """
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail,
    )


def raise_not_found(detail: str) -> NoReturn:
    """Raise a 404 Not Found exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 404 Not Found
    """
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    )


def raise_conflict(detail: str) -> NoReturn:
    """Raise a 409 Conflict exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 409 Conflict
    """
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    )


def raise_service_unavailable(detail: str) -> NoReturn:
    """Raise a 503 Service Unavailable exception.

    Use when the persistence store failed and the client should retry the
    same action manually.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 503 Service Unavailable
    """
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=detail,
    )


def raise_for_engine_error(error: ExamEngineError) -> NoReturn:
    """Translate a domain exception into the matching HTTPException.

    Args:
        error: Exception raised by the session engine

    Raises:
        HTTPException: Status and message chosen by exception type
    """
    if isinstance(error, TestNotFoundError):
        raise_not_found(ErrorMessages.test_not_found(error.test_id))
    if isinstance(error, EmptyQuestionBankError):
        raise_not_found(ErrorMessages.empty_question_bank(error.test_id))
    if isinstance(error, TestWindowClosedError):
        raise_forbidden(ErrorMessages.test_window_closed(error.not_yet_open))
    if isinstance(error, SessionNotActiveError):
        raise_conflict(ErrorMessages.SESSION_NOT_ACTIVE)
    if isinstance(error, StateNotFoundError):
        raise_conflict(ErrorMessages.ADAPTIVE_STATE_MISSING)
    if isinstance(error, DuplicateAnswerError):
        raise_conflict(ErrorMessages.already_answered(error.question_id))
    if isinstance(error, NoAnswersError):
        raise_bad_request(ErrorMessages.NO_ANSWERS)
    if isinstance(error, IncompleteAnswersError):
        raise_bad_request(
            ErrorMessages.unanswered_questions(error.unanswered_positions)
        )
    if isinstance(error, InvalidAnswerError):
        raise_bad_request(str(error))
    if isinstance(error, PersistenceError):
        raise_service_unavailable(ErrorMessages.SUBMISSION_SAVE_FAILED)
    raise error

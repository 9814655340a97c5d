"""
Exam session endpoints.

Every endpoint acts on the calling user's session for one test. Domain
errors from the session service are translated by ``raise_for_engine_error``.
"""
import logging

from fastapi import APIRouter, Depends, Query

from exam_engine.api.deps import (
    get_current_user_id,
    get_session_service,
    validate_identifier,
)
from exam_engine.core.error_responses import (
    ErrorMessages,
    raise_for_engine_error,
    raise_not_found,
)
from exam_engine.core.exceptions import ExamEngineError
from exam_engine.core.session.service import ExamSessionService
from exam_engine.schemas.responses import ExamResponse
from exam_engine.schemas.sessions import (
    AnswerRequest,
    SessionView,
    SubmitRequest,
    ViolationReport,
    ViolationStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{test_id}/start", response_model=SessionView)
async def start_session(
    test_id: str,
    restart: bool = Query(
        default=False,
        description="Discard prior progress and any prior result before starting",
    ),
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Start, resume or restart the user's session for a test.

    If the user already has a complete result for the test (and ``restart``
    is not set) the result is returned with ``already_completed`` and no
    session is started.

    Raises:
        HTTPException: 404 unknown test or empty question bank, 403 outside
            the test window, 503 on storage failure
    """
    validate_identifier(test_id, "test ID")
    try:
        return await service.start(user_id, test_id, force_restart=restart)
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.get("/{test_id}", response_model=SessionView)
async def get_session(
    test_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Current state of the user's live session for a test.

    Raises:
        HTTPException: 409 if no session is live in this process
    """
    try:
        return service.get_view(user_id, test_id)
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.post("/{test_id}/answers", response_model=SessionView)
async def submit_answer(
    test_id: str,
    answer: AnswerRequest,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Answer a question.

    Adaptive sessions respond with the next question, or with the final
    result once the question pool is exhausted.

    Raises:
        HTTPException: 400 invalid question or option, 409 no live session
            or question already answered, 503 on storage failure
    """
    try:
        return await service.answer(
            user_id,
            test_id,
            answer.question_id,
            answer.selected_index,
            answer.response_time_ms,
        )
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.post("/{test_id}/submit", response_model=SessionView)
async def submit_session(
    test_id: str,
    submission: SubmitRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Submit the session for scoring.

    A failed save (503) leaves the session active so the user can submit
    again; the result is still recorded only once.

    Raises:
        HTTPException: 400 no answers or unanswered questions, 409 no live
            session, 503 on storage failure
    """
    allow_incomplete = submission.allow_incomplete if submission else False
    try:
        return await service.submit(user_id, test_id, allow_incomplete=allow_incomplete)
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.post("/{test_id}/violations", response_model=ViolationStatus)
async def report_violation(
    test_id: str,
    report: ViolationReport,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Report an integrity violation from the proctoring client.

    The third counted violation terminates the session with a score of zero.
    """
    try:
        return await service.report_violation(
            user_id, test_id, report.violation_type, report.description
        )
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.post("/{test_id}/terminate", response_model=SessionView)
async def terminate_session(
    test_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Terminate the session for integrity reasons, recording a score of zero.
    """
    try:
        return await service.terminate(user_id, test_id)
    except ExamEngineError as e:
        raise_for_engine_error(e)


@router.get("/{test_id}/result", response_model=ExamResponse)
async def get_result(
    test_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExamSessionService = Depends(get_session_service),
):
    """
    The user's recorded result for a test.

    Raises:
        HTTPException: 404 if no result is recorded
    """
    validate_identifier(test_id, "test ID")
    try:
        result = await service.get_result(user_id, test_id)
    except ExamEngineError as e:
        raise_for_engine_error(e)
    if result is None:
        raise_not_found(ErrorMessages.RESULT_NOT_FOUND)
    return result

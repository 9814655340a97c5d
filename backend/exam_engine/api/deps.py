"""
Shared endpoint dependencies.
"""
import re

from fastapi import Header, Request

from exam_engine.core.error_responses import (
    ErrorMessages,
    raise_bad_request,
    raise_unauthorized,
)
from exam_engine.core.session.service import ExamSessionService

# Ids become document path segments, so slashes and whitespace are refused
_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]{1,128}$")


def validate_identifier(value: str, label: str) -> str:
    """
    Reject ids that cannot be used as document path segments.

    Raises:
        HTTPException: 400 if the id is malformed
    """
    if not _ID_PATTERN.match(value):
        raise_bad_request(f"Invalid {label}.")
    return value


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> str:
    """
    Identify the test-taker from the gateway-supplied X-User-ID header.

    Authentication happens upstream; this service trusts the header.

    Raises:
        HTTPException: 401 if the header is missing, 400 if malformed
    """
    if not x_user_id:
        raise_unauthorized(ErrorMessages.MISSING_USER_ID)
    return validate_identifier(x_user_id.strip(), "user ID")


def get_session_service(request: Request) -> ExamSessionService:
    """The application's session service, created in the lifespan."""
    return request.app.state.session_service

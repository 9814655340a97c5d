"""
Test catalog endpoints.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Dict, List

from exam_engine.api.deps import get_session_service, validate_identifier
from exam_engine.core.error_responses import raise_for_engine_error
from exam_engine.core.exceptions import ExamEngineError
from exam_engine.core.session.service import ExamSessionService

router = APIRouter()


class AdaptiveReadinessResponse(BaseModel):
    """Schema for a test's adaptive readiness report."""

    test_id: str = Field(..., description="Test ID")
    is_valid: bool = Field(..., description="Whether the bank supports adaptive delivery")
    counts: Dict[str, int] = Field(..., description="Question count per difficulty")
    total: int = Field(..., description="Total valid questions")
    min_per_difficulty: int = Field(..., description="Recommended minimum per level")
    warnings: List[str] = Field(default_factory=list, description="Readiness warnings")


@router.get("/{test_id}/adaptive-readiness", response_model=AdaptiveReadinessResponse)
async def get_adaptive_readiness(
    test_id: str,
    service: ExamSessionService = Depends(get_session_service),
):
    """
    Evaluate whether a test's question bank supports adaptive delivery.

    Raises:
        HTTPException: 404 if the test does not exist
    """
    validate_identifier(test_id, "test ID")
    try:
        result = await service.evaluate_readiness(test_id)
    except ExamEngineError as e:
        raise_for_engine_error(e)

    return AdaptiveReadinessResponse(
        test_id=test_id,
        is_valid=result.is_valid,
        counts=result.stats.as_dict(),
        total=result.stats.total,
        min_per_difficulty=result.min_per_difficulty,
        warnings=result.warnings,
    )

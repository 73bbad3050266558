"""
Prescription image analysis endpoint.
PHI-safe: NEVER log the image or extracted medications - counts only.
"""
import time
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.deps import (
    check_rate_limit,
    get_health_pipeline,
    get_request_id,
    record_success,
    response_metadata,
)
from app.api.symptoms import ERROR_RESPONSES
from app.core.auth import verify_auth_header
from app.core.logging import get_safe_logger
from app.schemas.prescription import PrescriptionAnalyzeRequest
from app.schemas.response import PrescriptionAnalysisResponse
from app.services.pipeline import HealthPipeline

router = APIRouter(
    prefix="/v1/prescriptions",
    tags=["prescriptions"],
    dependencies=[Depends(verify_auth_header), Depends(check_rate_limit)],
)
logger = get_safe_logger(__name__)


@router.post(
    "/analyze",
    response_model=PrescriptionAnalysisResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Extract medications from a prescription image",
    description=(
        "Reads a base64 data URI image into a medication list. Always answers 200 once "
        "authenticated; when analysis fails, medications is empty and summary says why."
    ),
    responses={401: ERROR_RESPONSES[401], 429: ERROR_RESPONSES[429]},
)
async def analyze_prescription(
    request_body: PrescriptionAnalyzeRequest,
    request_id: Annotated[str, Depends(get_request_id)],
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> PrescriptionAnalysisResponse:
    """Prescription image analysis."""
    start = time.perf_counter()
    logger.info(
        "Prescription analysis started",
        request_id=request_id,
        method="POST",
        path="/v1/prescriptions/analyze",
    )

    outcome = await pipeline.run_prescription_analysis(request_body.prescription_image_data_uri)

    inference_ms = outcome.stage_ms.get("analyze", 0)
    record_success("analyze_prescription", request_id, start, inference_ms)
    return PrescriptionAnalysisResponse(
        data=outcome.result,
        metadata=response_metadata(pipeline, request_id, inference_ms),
    )

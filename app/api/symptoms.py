"""
Symptom path endpoints: full check, identification, remedies/diet, medicines.
PHI-safe: NEVER log request bodies or generated text - only requestId, status, latency.
"""
import time
from typing import Annotated, Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import (
    check_rate_limit,
    elapsed_ms,
    get_health_pipeline,
    get_request_id,
    pipeline_error_response,
    record_failure,
    record_success,
    response_metadata,
)
from app.core.auth import verify_auth_header
from app.core.logging import get_safe_logger
from app.schemas.response import (
    ConditionResponse,
    ErrorResponse,
    MedicineResponse,
    RemedyDietResponse,
    SymptomCheckResponse,
)
from app.schemas.symptoms import HealthConditionRequest, IdentifyRequest, SymptomCheckRequest
from app.services.exceptions import PipelineError
from app.services.pipeline import HealthPipeline

router = APIRouter(
    prefix="/v1",
    tags=["symptoms"],
    dependencies=[Depends(verify_auth_header), Depends(check_rate_limit)],
)
logger = get_safe_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    429: {"model": ErrorResponse, "description": "Rate limited"},
    500: {"model": ErrorResponse, "description": "Internal error"},
    502: {"model": ErrorResponse, "description": "Generation failed"},
    503: {"model": ErrorResponse, "description": "Backend unavailable"},
}
_NOT_IDENTIFIED = {422: {"model": ErrorResponse, "description": "No conditions identified"}}


@router.post(
    "/symptoms/check",
    response_model=SymptomCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Identify conditions and suggest remedies and diet",
    description=(
        "Runs the text path: symptom identification followed by remedies and diet. "
        "Profile context, if given, is merged into the symptom text."
    ),
    responses={**ERROR_RESPONSES, **_NOT_IDENTIFIED},
)
async def check_symptoms(
    request_body: SymptomCheckRequest,
    request_id: Annotated[str, Depends(get_request_id)],
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> Union[SymptomCheckResponse, JSONResponse]:
    """Full symptom check."""
    start = time.perf_counter()
    logger.info(
        "Symptom check started",
        request_id=request_id,
        method="POST",
        path="/v1/symptoms/check",
    )

    outcome = await pipeline.run_symptom_check(request_body.symptoms, request_body.profile)
    inference_ms = sum(outcome.stage_ms.values())

    if not outcome.succeeded:
        record_failure("symptom_check", outcome.error, request_id, start)
        return pipeline_error_response(
            outcome.error, pipeline.model_version(), request_id, inference_ms
        )

    record_success("symptom_check", request_id, start, inference_ms)
    return SymptomCheckResponse(
        data=outcome.to_result(),
        metadata=response_metadata(pipeline, request_id, inference_ms),
    )


@router.post(
    "/symptoms/identify",
    response_model=ConditionResponse,
    status_code=status.HTTP_200_OK,
    summary="Identify candidate conditions",
    responses={**ERROR_RESPONSES, **_NOT_IDENTIFIED},
)
async def identify(
    request_body: IdentifyRequest,
    request_id: Annotated[str, Depends(get_request_id)],
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> Union[ConditionResponse, JSONResponse]:
    """Symptom identification only."""
    start = time.perf_counter()
    try:
        result = await pipeline.identify_conditions(request_body.keywords)
    except PipelineError as exc:
        record_failure("identify_conditions", exc, request_id, start)
        return pipeline_error_response(exc, pipeline.model_version(), request_id)

    inference_ms = elapsed_ms(start)
    record_success("identify_conditions", request_id, start, inference_ms)
    return ConditionResponse(
        data=result,
        metadata=response_metadata(pipeline, request_id, inference_ms),
    )


@router.post(
    "/remedies",
    response_model=RemedyDietResponse,
    status_code=status.HTTP_200_OK,
    summary="Suggest home remedies and diet",
    responses=ERROR_RESPONSES,
)
async def remedies(
    request_body: HealthConditionRequest,
    request_id: Annotated[str, Depends(get_request_id)],
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> Union[RemedyDietResponse, JSONResponse]:
    """Remedies and diet for an identified condition."""
    start = time.perf_counter()
    try:
        result = await pipeline.suggest_remedies_and_diet(request_body.health_condition)
    except PipelineError as exc:
        record_failure("suggest_remedies_and_diet", exc, request_id, start)
        return pipeline_error_response(exc, pipeline.model_version(), request_id)

    inference_ms = elapsed_ms(start)
    record_success("suggest_remedies_and_diet", request_id, start, inference_ms)
    return RemedyDietResponse(
        data=result,
        metadata=response_metadata(pipeline, request_id, inference_ms),
    )


@router.post(
    "/medicines",
    response_model=MedicineResponse,
    status_code=status.HTTP_200_OK,
    summary="Suggest OTC medicines",
    description=(
        "Always answers 200 once authenticated. When suggestions cannot be generated "
        "the payload says so and still carries a disclaimer."
    ),
    responses={401: ERROR_RESPONSES[401], 429: ERROR_RESPONSES[429]},
)
async def medicines(
    request_body: HealthConditionRequest,
    request_id: Annotated[str, Depends(get_request_id)],
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> MedicineResponse:
    """OTC medicine suggestions for an identified condition."""
    start = time.perf_counter()
    result = await pipeline.suggest_medicines(request_body.health_condition)

    inference_ms = elapsed_ms(start)
    record_success("suggest_medicines", request_id, start, inference_ms)
    return MedicineResponse(
        data=result,
        metadata=response_metadata(pipeline, request_id, inference_ms),
    )

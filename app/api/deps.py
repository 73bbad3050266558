"""
Shared API dependencies and response helpers.
PHI-safe: No logging of request bodies, results, or user identifiers.
"""
import time
import uuid
from typing import Annotated

from fastapi import Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.core.logging import get_safe_logger
from app.core.metrics import get_metrics_collector
from app.core.rate_limiter import get_rate_limiter
from app.schemas.response import ErrorDetail, ErrorResponse, ResponseMetadata
from app.services.exceptions import PipelineError
from app.services.pipeline import HealthPipeline, get_pipeline

logger = get_safe_logger(__name__)


def get_request_id(
    x_request_id: Annotated[str | None, Header(alias="X-Request-ID")] = None
) -> str:
    """Get or generate request ID from header."""
    if x_request_id and len(x_request_id) <= 100:
        return x_request_id
    return str(uuid.uuid4())


def get_health_pipeline() -> HealthPipeline:
    """Pipeline dependency; overridden in tests."""
    return get_pipeline()


async def check_rate_limit(request: Request) -> None:
    """
    Per-user rate limit check.

    Raises HTTPException 429 if the limit is exceeded.
    PHI-safe: Does not log UID.
    """
    uid = getattr(request.state, "uid", None)
    if uid is None:
        return

    decision = get_rate_limiter().check_and_record(uid)
    if decision.allowed:
        request.state.rate_limit_remaining = decision.remaining
        return

    get_metrics_collector().record_rate_limited()
    logger.warning(
        "Rate limit exceeded",
        error_code="RATE_LIMITED",
        reset_seconds=decision.reset_seconds
    )

    error_response = ErrorResponse(
        error=ErrorDetail(
            code="RATE_LIMITED",
            message=f"Rate limit exceeded. Try again in {decision.reset_seconds} seconds.",
            retryable=True
        ),
        metadata=ResponseMetadata(
            model_version=get_pipeline().model_version(),
            inference_ms=0,
            request_id=request.headers.get("X-Request-ID", str(uuid.uuid4()))
        )
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=error_response.model_dump(by_alias=True)
    )


def pipeline_error_response(
    exc: PipelineError,
    model_version: str,
    request_id: str,
    inference_ms: int = 0,
) -> JSONResponse:
    """Map a pipeline error to the error envelope, using its own status code."""
    error_response = ErrorResponse(
        error=ErrorDetail(
            code=exc.error_code.value,
            message=exc.message,
            retryable=exc.retryable,
        ),
        metadata=ResponseMetadata(
            model_version=model_version,
            inference_ms=inference_ms,
            request_id=request_id,
        ),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(by_alias=True),
    )


def elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def response_metadata(pipeline: HealthPipeline, request_id: str, inference_ms: int) -> ResponseMetadata:
    return ResponseMetadata(
        model_version=pipeline.model_version(),
        inference_ms=inference_ms,
        request_id=request_id,
    )


def record_failure(operation: str, exc: PipelineError, request_id: str, start: float) -> None:
    """Log and count a failed request. Error code only, never the message."""
    latency_ms = elapsed_ms(start)
    logger.warning(
        "Request failed",
        operation=operation,
        error_code=exc.error_code.value,
        request_id=request_id,
        status_code=exc.status_code,
        latency_ms=latency_ms,
    )
    get_metrics_collector().record_request(
        operation,
        latency_ms=latency_ms,
        inference_ms=0,
        success=False,
        error_code=exc.error_code.value,
    )


def record_success(operation: str, request_id: str, start: float, inference_ms: int) -> None:
    latency_ms = elapsed_ms(start)
    logger.info(
        "Request completed",
        operation=operation,
        request_id=request_id,
        status="success",
        status_code=200,
        latency_ms=latency_ms,
        inference_ms=inference_ms,
    )
    get_metrics_collector().record_request(
        operation,
        latency_ms=latency_ms,
        inference_ms=inference_ms,
        success=True,
    )

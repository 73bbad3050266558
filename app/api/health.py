"""
Health check and metrics endpoints.
PHI-safe: no user data in responses.
"""
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.deps import get_health_pipeline
from app.core.config import get_settings
from app.core.metrics import get_metrics_collector
from app.services.pipeline import HealthPipeline

router = APIRouter(tags=["health"])

SERVICE_NAME = "medibot-service"
SERVICE_VERSION = "0.1.0"


# === Response Models ===

class HealthResponse(BaseModel):
    """Basic health check response."""
    ok: bool


class ReadyResponse(BaseModel):
    """Readiness check response."""
    ready: bool
    checks: Dict[str, bool]


class DetailedHealthResponse(BaseModel):
    """Detailed health response for /v1/health."""
    ok: bool
    service: str = Field(default=SERVICE_NAME)
    version: str
    model_version: str = Field(alias="modelVersion")
    backend: str
    checks: Dict[str, bool]

    class Config:
        populate_by_name = True
        protected_namespaces = ()


class MetricsResponse(BaseModel):
    """Metrics response."""
    uptime_seconds: int = Field(alias="uptimeSeconds")
    total_requests: int = Field(alias="totalRequests")
    success_count: int = Field(alias="successCount")
    error_count: int = Field(alias="errorCount")
    error_codes: Dict[str, int] = Field(alias="errorCodes")
    operations: Dict[str, Any]
    latency: Dict[str, Any]
    inference_latency: Dict[str, Any] = Field(alias="inferenceLatency")
    rate_limited: int = Field(alias="rateLimited")

    class Config:
        populate_by_name = True


async def _backend_checks(pipeline: HealthPipeline) -> Dict[str, bool]:
    transport = pipeline.client.transport
    return {f"{transport.backend}_reachable": await transport.check_health()}


# === Endpoints ===

@router.get(
    "/healthz",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the service is alive"
)
async def health_check() -> HealthResponse:
    """Liveness probe for Kubernetes/Cloud Run."""
    return HealthResponse(ok=True)


@router.get(
    "/readyz",
    response_model=ReadyResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    description="Returns 200 with ready=true when the generation backend is reachable"
)
async def readiness_check(
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> ReadyResponse:
    """Readiness probe. The mock backend is always ready."""
    checks = await _backend_checks(pipeline)
    return ReadyResponse(ready=all(checks.values()), checks=checks)


@router.get(
    "/v1/health",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
    description="Returns service info, model version and backend reachability"
)
async def detailed_health_check(
    pipeline: Annotated[HealthPipeline, Depends(get_health_pipeline)],
) -> DetailedHealthResponse:
    checks = await _backend_checks(pipeline)
    return DetailedHealthResponse(
        ok=all(checks.values()),
        version=SERVICE_VERSION,
        model_version=pipeline.model_version(),
        backend=get_settings().generation_backend,
        checks=checks
    )


@router.get(
    "/v1/metrics",
    response_model=MetricsResponse,
    status_code=status.HTTP_200_OK,
    summary="Service metrics",
    description="Returns aggregated service metrics (PHI-safe)"
)
async def get_metrics() -> MetricsResponse:
    """Aggregated counters only; no identifiers or content."""
    snapshot = get_metrics_collector().get_snapshot()
    return MetricsResponse(
        uptime_seconds=snapshot["uptime_seconds"],
        total_requests=snapshot["total_requests"],
        success_count=snapshot["success_count"],
        error_count=snapshot["error_count"],
        error_codes=snapshot["error_codes"],
        operations=snapshot["operations"],
        latency=snapshot["latency"],
        inference_latency=snapshot["inference_latency"],
        rate_limited=snapshot["rate_limited"]
    )

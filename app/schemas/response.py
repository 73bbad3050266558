"""
Response envelopes for the health API.
PHI note: data payloads contain health information - NEVER log.
"""
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.prescription import PrescriptionAnalysisResult
from app.schemas.symptoms import (
    ConditionResult,
    MedicineResult,
    RemedyDietResult,
    SymptomCheckResult,
)

ErrorCode = Literal[
    "UNAUTHORIZED",
    "BAD_REQUEST",
    "INVALID_INPUT",
    "GENERATION_FAILED",
    "BACKEND_UNAVAILABLE",
    "TIMEOUT",
    "RATE_LIMITED",
    "IDENTIFICATION_FAILED",
    "REMEDY_FAILED",
    "INTERNAL_ERROR",
]


class ResponseMetadata(BaseModel):
    """Metadata included in all responses."""
    model_version: str = Field(..., alias="modelVersion", description="Model version used")
    inference_ms: int = Field(..., alias="inferenceMs", description="Pipeline time in ms")
    request_id: str = Field(..., alias="requestId", description="Request ID for tracing")

    class Config:
        populate_by_name = True
        protected_namespaces = ()


class ErrorDetail(BaseModel):
    """Error details for failed requests."""
    code: ErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(default=False, description="Whether the request can be retried")


class ErrorResponse(BaseModel):
    """Error response."""
    success: Literal[False] = False
    error: ErrorDetail = Field(..., description="Error details")
    metadata: ResponseMetadata = Field(..., description="Response metadata")


class SymptomCheckResponse(BaseModel):
    success: Literal[True] = True
    data: SymptomCheckResult
    metadata: ResponseMetadata


class ConditionResponse(BaseModel):
    success: Literal[True] = True
    data: ConditionResult
    metadata: ResponseMetadata


class RemedyDietResponse(BaseModel):
    success: Literal[True] = True
    data: RemedyDietResult
    metadata: ResponseMetadata


class MedicineResponse(BaseModel):
    success: Literal[True] = True
    data: MedicineResult
    metadata: ResponseMetadata


class PrescriptionAnalysisResponse(BaseModel):
    success: Literal[True] = True
    data: PrescriptionAnalysisResult
    metadata: ResponseMetadata

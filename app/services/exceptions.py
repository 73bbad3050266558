"""
Error taxonomy for the health pipeline.
PHI-safe: These exceptions never carry user input or model output.
"""
from enum import Enum


class PipelineErrorCode(str, Enum):
    """PHI-safe error codes for pipeline failures."""
    INVALID_INPUT = "INVALID_INPUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    IDENTIFICATION_FAILED = "IDENTIFICATION_FAILED"
    REMEDY_FAILED = "REMEDY_FAILED"


IDENTIFICATION_FAILURE_MESSAGE = (
    "Could not identify potential conditions. Please try rephrasing your symptoms."
)
REMEDY_FAILURE_MESSAGE = (
    "Could not fetch remedies and diet suggestions. Please try again."
)


class PipelineError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        error_code: PHI-safe error code for logging and response
        status_code: HTTP status code to return
        retryable: Whether the caller may retry
        message: PHI-safe message (no sensitive data)
    """

    def __init__(
        self,
        error_code: PipelineErrorCode,
        message: str = "Pipeline failed",
        status_code: int = 500,
        retryable: bool = True
    ):
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class InvalidInputError(PipelineError):
    """Raised before any model call when caller input violates the input schema."""

    def __init__(self, reason: str = "Invalid input"):
        super().__init__(
            error_code=PipelineErrorCode.INVALID_INPUT,
            message=reason,
            status_code=400,
            retryable=False
        )


class GenerationFailure(PipelineError):
    """Raised when the model returned nothing or output failing the schema."""

    def __init__(
        self,
        reason: str = "Generation failed",
        error_code: PipelineErrorCode = PipelineErrorCode.GENERATION_FAILED,
        status_code: int = 502,
    ):
        super().__init__(
            error_code=error_code,
            message=reason,
            status_code=status_code,
            retryable=True
        )


class BackendUnavailableError(GenerationFailure):
    """Raised when the generation backend is not reachable."""

    def __init__(self, backend: str = "unknown"):
        super().__init__(
            reason=f"Backend unavailable: {backend}",
            error_code=PipelineErrorCode.BACKEND_UNAVAILABLE,
            status_code=503,
        )


class BackendTimeoutError(GenerationFailure):
    """Raised when the backend request times out."""

    def __init__(self, timeout_ms: int = 0):
        super().__init__(
            reason=f"Backend timeout after {timeout_ms}ms",
            error_code=PipelineErrorCode.TIMEOUT,
            status_code=503,
        )


class RateLimitedError(GenerationFailure):
    """Raised when the backend returns 429."""

    def __init__(self):
        super().__init__(
            reason="Rate limited by backend",
            error_code=PipelineErrorCode.RATE_LIMITED,
            status_code=429,
        )


class IdentificationFailure(PipelineError):
    """Symptom identification produced no usable conditions."""

    def __init__(self, message: str = IDENTIFICATION_FAILURE_MESSAGE):
        super().__init__(
            error_code=PipelineErrorCode.IDENTIFICATION_FAILED,
            message=message,
            status_code=422,
            retryable=True
        )


class RemedyFailure(PipelineError):
    """Remedy/diet stage did not return both mandatory fields."""

    def __init__(self, message: str = REMEDY_FAILURE_MESSAGE):
        super().__init__(
            error_code=PipelineErrorCode.REMEDY_FAILED,
            message=message,
            status_code=502,
            retryable=True
        )

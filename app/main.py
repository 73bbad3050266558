"""
Medibot Service - FastAPI Application Entry Point.

Structured health guidance from symptom text and prescription images.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.health import SERVICE_VERSION, router as health_router
from app.api.prescriptions import router as prescriptions_router
from app.api.symptoms import router as symptoms_router
from app.core.auth import init_firebase
from app.core.config import get_settings
from app.core.logging import get_safe_logger, setup_logging
from app.schemas.response import ErrorDetail, ErrorResponse, ResponseMetadata
from app.services.pipeline import get_pipeline

# Initialize logging first
setup_logging()
logger = get_safe_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.
    Initializes resources on startup and cleans up on shutdown.
    """
    settings = get_settings()
    logger.info(
        "Starting Medibot Service",
        backend=settings.generation_backend,
        model_version=get_pipeline().model_version()
    )

    if settings.auth_mode == "firebase":
        try:
            init_firebase()
        except Exception:
            # Health checks keep working; auth fails at request time
            logger.error("Failed to initialize Firebase", error_code="FIREBASE_INIT_ERROR")

    yield

    logger.info("Shutting down Medibot Service")


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    retryable: bool,
) -> JSONResponse:
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    logger.error(
        "Request rejected",
        error_code=code,
        request_id=request_id,
        status_code=status_code
    )
    error_response = ErrorResponse(
        error=ErrorDetail(code=code, message=message, retryable=retryable),
        metadata=ResponseMetadata(
            model_version=get_pipeline().model_version(),
            inference_ms=0,
            request_id=request_id
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(by_alias=True)
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.
    PHI-safe: field values are never echoed; only the offending field names.
    """
    fields = sorted({
        ".".join(str(part) for part in err.get("loc", ())[1:])
        for err in exc.errors()
        if len(err.get("loc", ())) > 1
    })
    message = "Invalid request format"
    if fields:
        message += f" ({', '.join(fields)})"
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "BAD_REQUEST",
        message,
        retryable=False,
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """Handle HTTP exceptions (including auth errors and rate limiting)."""
    # Structured error from the rate limiter passes through unchanged
    if isinstance(exc.detail, dict):
        logger.error(
            "HTTP exception",
            error_code=exc.detail.get("error", {}).get("code", "UNKNOWN"),
            status_code=exc.status_code
        )
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    if exc.status_code == 401:
        error_code = "UNAUTHORIZED"
    elif exc.status_code == 429:
        error_code = "RATE_LIMITED"
    elif exc.status_code < 500:
        error_code = "BAD_REQUEST"
    else:
        error_code = "INTERNAL_ERROR"

    return _error_response(
        request,
        exc.status_code,
        error_code,
        exc.detail if isinstance(exc.detail, str) else "Request failed",
        retryable=exc.status_code >= 500 or exc.status_code == 429,
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    PHI-safe: Never log exception details.
    """
    logger.error(
        "Unexpected error",
        error_code="INTERNAL_ERROR",
        exception_class=type(exc).__name__
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "Internal server error",
        retryable=True,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Medibot Service",
        description="Symptom guidance and prescription reading with mandatory safety disclaimers",
        version=SERVICE_VERSION,
        docs_url="/docs" if settings.service_env == "dev" else None,
        redoc_url="/redoc" if settings.service_env == "dev" else None,
        openapi_url="/openapi.json" if settings.service_env == "dev" else None,
        lifespan=lifespan
    )

    app.include_router(health_router)
    app.include_router(symptoms_router)
    app.include_router(prescriptions_router)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.service_env == "dev"
    )

"""
PHI-safe logging module.
CRITICAL: Never log symptom text, conditions, prescription images or model output.
Only allow-listed context fields (ids, timings, codes, counts) are rendered.
"""
import logging
import sys
from typing import Any, Optional

from app.core.config import get_settings

_NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def setup_logging() -> None:
    """Configure application logging with PHI-safe format."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.service_env == "dev" else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True
    )

    # httpx logs full request URLs at INFO
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class SafeLogger:
    """
    PHI-safe logger wrapper.

    Context is passed as keyword arguments. Keys outside SAFE_FIELDS and
    None values are dropped, so a caller can never leak a field by accident.
    """

    SAFE_FIELDS = frozenset({
        # request
        "request_id", "method", "path", "status", "status_code", "reset_seconds",
        # timing
        "latency_ms", "inference_ms",
        # pipeline
        "operation", "prompt", "stage", "state", "fallback", "repaired_fields",
        "medications_count",
        # backend
        "backend", "model_version",
        # failures
        "error_code", "exception_class", "credential_mode",
    })

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _format_safe_context(self, context: dict[str, Any]) -> str:
        return " | ".join(
            f"{key}={value}"
            for key, value in context.items()
            if key in self.SAFE_FIELDS and value is not None
        )

    def _log(self, level: int, message: str, context: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        ctx = self._format_safe_context(context)
        self._logger.log(level, f"{message} | {ctx}" if ctx else message)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, context)

    def error(
        self,
        message: str,
        error_code: Optional[str] = None,
        **context: Any
    ) -> None:
        """
        Log error with safe context only.
        NEVER pass exception messages; use exception_class instead.
        """
        self._log(logging.ERROR, message, {**context, "error_code": error_code})


def get_safe_logger(name: str) -> SafeLogger:
    """Get a PHI-safe logger instance."""
    return SafeLogger(name)

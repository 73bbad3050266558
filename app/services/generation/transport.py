"""
Generation transports.

A transport takes a prompt template, the declared output schema and the input
values, sends one request to a model and returns the raw model output
(a JSON string or an already-decoded object), or None when the model produced
nothing. Validation of that output is the client's job.

PHI-safe: NEVER log prompt, inputs or model output.
"""
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import httpx
from pydantic import BaseModel

from app.core.config import Settings, get_settings
from app.core.logging import get_safe_logger
from app.services.exceptions import (
    BackendTimeoutError,
    BackendUnavailableError,
    GenerationFailure,
    InvalidInputError,
    RateLimitedError,
)
from app.services.generation.prompt import PromptTemplate, RenderedPrompt

logger = get_safe_logger(__name__)

MOCK_MODEL_VERSION = "mock-0"


class GenerationTransport(ABC):
    """Single-call model capability: produce output conforming to a schema."""

    backend: str = "unknown"

    @abstractmethod
    async def invoke(
        self,
        template: PromptTemplate,
        schema: type[BaseModel],
        values: Mapping[str, Any],
    ) -> Optional[Any]:
        """Return the model output, or None when the model produced nothing."""

    @abstractmethod
    def model_version(self) -> str:
        """Version string reported in response metadata."""

    async def check_health(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------

_MOCK_OUTPUTS: dict[str, dict[str, Any]] = {
    "identifySymptomsPrompt": {
        "conditions": "Mock condition A; Mock condition B",
    },
    "suggestRemediesAndDietPrompt": {
        "homeRemedies": "- Rest and keep hydrated",
        "dietSuggestions": "- Light, balanced meals with plenty of fluids",
    },
    "suggestMedicinesPrompt": {
        "suggestedMedicines": "No specific suggestion from the development backend.",
    },
    "analyzePrescriptionPrompt": {
        "medications": [],
        "summary": "Analysis failed: development backend does not read images.",
    },
}


class MockTransport(GenerationTransport):
    """
    Deterministic transport for local development and tests.

    Does NOT look at the inputs and never invents clinical content.
    Unknown prompts yield no output.
    """

    backend = "mock"

    def __init__(self, outputs: Optional[Mapping[str, Any]] = None):
        self._outputs = dict(_MOCK_OUTPUTS if outputs is None else outputs)

    async def invoke(
        self,
        template: PromptTemplate,
        schema: type[BaseModel],
        values: Mapping[str, Any],
    ) -> Optional[Any]:
        output = self._outputs.get(template.name)
        # Copy so callers can never mutate the canned output
        return json.loads(json.dumps(output)) if output is not None else None

    def model_version(self) -> str:
        return MOCK_MODEL_VERSION


# ---------------------------------------------------------------------------
# OpenAI-compatible backend (LM Studio, Ollama, vLLM)
# ---------------------------------------------------------------------------

def _validate_data_uri(uri: str) -> None:
    """Reject media that is not a 'data:<mimetype>;base64,<data>' string."""
    header, sep, payload = uri.partition(",")
    if (
        not sep
        or not payload
        or not header.startswith("data:")
        or not header.endswith(";base64")
        or "/" not in header[len("data:"):]
    ):
        raise InvalidInputError("Media must be a base64 data URI")


def _build_system_message(rendered: RenderedPrompt, schema: type[BaseModel]) -> str:
    """Append the JSON output contract to the stage's system instruction."""
    json_schema = json.dumps(schema.model_json_schema(by_alias=True), ensure_ascii=False)
    return (
        f"{rendered.system}\n\n"
        "## OUTPUT FORMAT\n"
        "Respond with ONLY one JSON object conforming to this JSON schema. "
        "Omit optional fields that do not apply. No markdown, no explanations.\n"
        f"{json_schema}"
    )


def _build_user_content(rendered: RenderedPrompt) -> Any:
    if not rendered.media:
        return rendered.text
    parts: list[dict[str, Any]] = [{"type": "text", "text": rendered.text}]
    for uri in rendered.media:
        _validate_data_uri(uri)
        parts.append({"type": "image_url", "image_url": {"url": uri}})
    return parts


class OpenAICompatTransport(GenerationTransport):
    """Chat-completions transport for any OpenAI-compatible server."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_ms: int,
        backend: str = "openai_compat",
        temperature: float = 0.2,
        max_tokens: int = 1024,
        api_key: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_ms = timeout_ms
        self.backend = backend
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = api_key

    def _chat_url(self) -> str:
        # vLLM is configured without the /v1 suffix
        if self.backend == "vllm" and not self.base_url.endswith("/v1"):
            return f"{self.base_url}/v1/chat/completions"
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def invoke(
        self,
        template: PromptTemplate,
        schema: type[BaseModel],
        values: Mapping[str, Any],
    ) -> Optional[Any]:
        """
        Send one chat completion and return the message content.

        Raises:
            InvalidInputError: If a media value is not a base64 data URI
            BackendUnavailableError: If backend is not reachable or the
                connection fails mid-request
            BackendTimeoutError: If request times out
            RateLimitedError: If backend returns 429
            GenerationFailure: If the backend response is malformed
        """
        start_time = time.perf_counter()
        rendered = template.render(values)

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _build_system_message(rendered, schema)},
                {"role": "user", "content": _build_user_content(rendered)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_ms / 1000.0) as client:
                response = await client.post(
                    self._chat_url(),
                    json=payload,
                    headers=self._headers(),
                )

                if response.status_code == 429:
                    raise RateLimitedError()

                if response.status_code >= 500:
                    raise BackendUnavailableError(self.backend)

                response.raise_for_status()

        except httpx.ConnectError:
            raise BackendUnavailableError(self.backend)
        except httpx.TimeoutException:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            raise BackendTimeoutError(elapsed_ms)
        except (RateLimitedError, BackendUnavailableError):
            raise
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise RateLimitedError()
            raise BackendUnavailableError(self.backend)
        except httpx.HTTPError as e:
            # Read/write resets, protocol errors, decoding errors, redirects
            logger.warning(
                "Backend transport error",
                backend=self.backend,
                prompt=template.name,
                exception_class=type(e).__name__,
            )
            raise BackendUnavailableError(self.backend)

        try:
            result = response.json()
        except json.JSONDecodeError:
            raise GenerationFailure("Invalid JSON response from backend")

        # OpenAI-style error object
        if isinstance(result, dict) and "error" in result:
            err = result.get("error") or {}
            logger.error(
                "Backend returned error object",
                error_code="GENERATION_FAILED",
                backend=self.backend,
                prompt=template.name,
                status_code=response.status_code,
                exception_class=err.get("type") if isinstance(err, dict) else None,
            )
            raise GenerationFailure("Backend returned an error response")

        try:
            choices = result.get("choices", []) if isinstance(result, dict) else []
            if not choices:
                raise KeyError("choices")

            first = choices[0] if isinstance(choices[0], dict) else {}
            msg = first.get("message")

            if isinstance(msg, dict) and isinstance(msg.get("content"), str):
                content = msg["content"]
            elif isinstance(first.get("text"), str):
                # fallback for completion-style servers
                content = first["text"]
            elif isinstance(msg, dict) and msg.get("content") is None:
                content = ""
            else:
                raise KeyError("content")

        except (KeyError, IndexError, TypeError):
            raise GenerationFailure("Invalid response format from backend")

        return content if content.strip() else None

    def model_version(self) -> str:
        prefix = "vllm" if self.backend == "vllm" else "openai-compat"
        return f"{prefix}-{self.model}" if self.model else f"{prefix}-unknown"

    async def check_health(self) -> bool:
        """
        Check if the backend is reachable.

        Tries /models first, then the bare base URL.
        Any 200 or 404 means the server is up.
        """
        models_url = (
            f"{self.base_url}/v1/models"
            if self.backend == "vllm" and not self.base_url.endswith("/v1")
            else f"{self.base_url}/models"
        )
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                try:
                    response = await client.get(models_url)
                    if response.status_code in (200, 404):
                        return True
                except httpx.HTTPError:
                    pass

                try:
                    response = await client.get(self.base_url.replace("/v1", ""))
                    return response.status_code in (200, 404)
                except httpx.HTTPError:
                    return False
        except Exception:
            return False


def build_transport(settings: Optional[Settings] = None) -> GenerationTransport:
    """Create the transport selected by GENERATION_BACKEND."""
    settings = settings or get_settings()

    if settings.generation_backend == "vllm":
        return OpenAICompatTransport(
            base_url=settings.vllm_base_url,
            model=settings.vllm_model,
            timeout_ms=settings.vllm_timeout_ms,
            backend="vllm",
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
        )

    if settings.generation_backend == "openai_compat":
        return OpenAICompatTransport(
            base_url=settings.openai_compat_base_url,
            model=settings.openai_compat_model,
            timeout_ms=settings.openai_compat_timeout_ms,
            backend="openai_compat",
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
            api_key=settings.openai_compat_api_key,
        )

    return MockTransport()

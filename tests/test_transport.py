"""
Tests for generation transports and backend selection.
HTTP is served by httpx.MockTransport; no network access.
"""
import json
from unittest.mock import patch

import httpx
import pytest
from pydantic import BaseModel

from app.core.config import Settings
from app.services.exceptions import (
    BackendTimeoutError,
    BackendUnavailableError,
    GenerationFailure,
    InvalidInputError,
    RateLimitedError,
)
from app.services.flows.identify_symptoms import IDENTIFY_SYMPTOMS_PROMPT, IdentifySymptomsOutput
from app.services.flows.prescription import (
    ANALYZE_PRESCRIPTION_PROMPT,
    AnalyzePrescriptionOutput,
)
from app.services.generation import MockTransport, OpenAICompatTransport, build_transport

_RealAsyncClient = httpx.AsyncClient


def _serve(handler):
    """Patch httpx.AsyncClient so every client uses the given handler."""
    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)
    return patch("app.services.generation.transport.httpx.AsyncClient", side_effect=factory)


def _chat_response(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _transport(backend="openai_compat", base_url="http://localhost:1234/v1"):
    return OpenAICompatTransport(base_url=base_url, model="medgemma", timeout_ms=1000, backend=backend)


class Dummy(BaseModel):
    value: str


class TestOpenAICompatTransport:

    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return _chat_response('{"conditions": "Common cold"}')

        with _serve(handler):
            output = await _transport().invoke(
                IDENTIFY_SYMPTOMS_PROMPT, IdentifySymptomsOutput, {"keywords": "runny nose"}
            )

        assert output == '{"conditions": "Common cold"}'
        assert captured["url"] == "http://localhost:1234/v1/chat/completions"
        body = captured["body"]
        assert body["model"] == "medgemma"
        assert body["stream"] is False
        assert body["messages"][0]["role"] == "system"
        assert "conditions" in body["messages"][0]["content"]
        assert "runny nose" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_vllm_base_url_gets_v1_suffix(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["url"] = str(request.url)
            return _chat_response("{}")

        transport = _transport(backend="vllm", base_url="http://vllm:8000")
        with _serve(handler):
            await transport.invoke(IDENTIFY_SYMPTOMS_PROMPT, IdentifySymptomsOutput, {"keywords": "x"})

        assert captured["url"] == "http://vllm:8000/v1/chat/completions"
        assert transport.model_version() == "vllm-medgemma"

    @pytest.mark.asyncio
    async def test_media_is_sent_as_image_part(self):
        captured = {}
        uri = "data:image/png;base64,iVBORw0KGgo="

        def handler(request: httpx.Request):
            captured["body"] = json.loads(request.content)
            return _chat_response('{"medications": []}')

        with _serve(handler):
            await _transport().invoke(
                ANALYZE_PRESCRIPTION_PROMPT,
                AnalyzePrescriptionOutput,
                {"prescription_image_data_uri": uri},
            )

        parts = captured["body"]["messages"][1]["content"]
        assert parts[0]["type"] == "text"
        assert uri not in parts[0]["text"]
        assert parts[1] == {"type": "image_url", "image_url": {"url": uri}}

    @pytest.mark.asyncio
    async def test_malformed_data_uri_rejected_before_request(self):
        def handler(request: httpx.Request):
            raise AssertionError("backend must not be called")

        with _serve(handler):
            with pytest.raises(InvalidInputError):
                await _transport().invoke(
                    ANALYZE_PRESCRIPTION_PROMPT,
                    AnalyzePrescriptionOutput,
                    {"prescription_image_data_uri": "data:not-an-image"},
                )

    @pytest.mark.asyncio
    async def test_empty_content_is_no_output(self):
        with _serve(lambda request: _chat_response("   ")):
            output = await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        assert output is None

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self):
        with _serve(lambda request: httpx.Response(429)):
            with pytest.raises(RateLimitedError) as exc_info:
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_5xx_is_backend_unavailable(self):
        with _serve(lambda request: httpx.Response(503)):
            with pytest.raises(BackendUnavailableError):
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})

    @pytest.mark.asyncio
    async def test_connect_error_is_backend_unavailable(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("connection refused")

        with _serve(handler):
            with pytest.raises(BackendUnavailableError):
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ReadError("connection reset"),
        httpx.WriteError("broken pipe"),
        httpx.RemoteProtocolError("server disconnected"),
    ])
    async def test_mid_request_failure_is_backend_unavailable(self, error):
        def handler(request: httpx.Request):
            raise error

        with _serve(handler):
            with pytest.raises(BackendUnavailableError) as exc_info:
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout_is_backend_timeout(self):
        def handler(request: httpx.Request):
            raise httpx.ReadTimeout("timed out")

        with _serve(handler):
            with pytest.raises(BackendTimeoutError) as exc_info:
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_error_object_is_generation_failure(self):
        body = {"error": {"type": "invalid_request_error", "message": "bad"}}
        with _serve(lambda request: httpx.Response(200, json=body)):
            with pytest.raises(GenerationFailure):
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})

    @pytest.mark.asyncio
    async def test_missing_choices_is_generation_failure(self):
        with _serve(lambda request: httpx.Response(200, json={"choices": []})):
            with pytest.raises(GenerationFailure):
                await _transport().invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})

    @pytest.mark.asyncio
    async def test_api_key_sent_as_bearer(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["auth"] = request.headers.get("Authorization")
            return _chat_response("{}")

        transport = OpenAICompatTransport(
            base_url="http://localhost:1234/v1", model="m", timeout_ms=1000, api_key="sk-test"
        )
        with _serve(handler):
            await transport.invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})

        assert captured["auth"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_health_check_accepts_200(self):
        with _serve(lambda request: httpx.Response(200, json={"data": []})):
            assert await _transport().check_health() is True

    @pytest.mark.asyncio
    async def test_health_check_false_when_unreachable(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("connection refused")

        with _serve(handler):
            assert await _transport().check_health() is False


class TestMockTransport:

    @pytest.mark.asyncio
    async def test_known_prompt_returns_copy(self):
        transport = MockTransport()
        first = await transport.invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        first["conditions"] = "mutated"
        second = await transport.invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"})
        assert second["conditions"] != "mutated"

    @pytest.mark.asyncio
    async def test_unknown_prompt_yields_nothing(self):
        transport = MockTransport(outputs={})
        assert await transport.invoke(IDENTIFY_SYMPTOMS_PROMPT, Dummy, {"keywords": "x"}) is None

    def test_model_version(self):
        assert MockTransport().model_version() == "mock-0"


class TestBuildTransport:

    def test_mock_is_default(self):
        assert isinstance(build_transport(Settings(generation_backend="mock")), MockTransport)

    def test_vllm_backend(self):
        transport = build_transport(Settings(generation_backend="vllm", vllm_base_url="http://vllm:8000"))
        assert isinstance(transport, OpenAICompatTransport)
        assert transport.backend == "vllm"
        assert transport.base_url == "http://vllm:8000"

    def test_openai_compat_backend(self):
        transport = build_transport(Settings(generation_backend="openai_compat"))
        assert isinstance(transport, OpenAICompatTransport)
        assert transport.backend == "openai_compat"

"""
Shared fixtures: dev auth, mock backend, and a scripted transport.
Environment is set before any app module reads settings.
"""
import os

os.environ.setdefault("SERVICE_ENV", "dev")
os.environ.setdefault("AUTH_MODE", "dev")
os.environ.setdefault("DEV_BEARER_TOKEN", "dev-token")
os.environ.setdefault("GENERATION_BACKEND", "mock")

from typing import Any, Mapping, Optional  # noqa: E402

import pytest  # noqa: E402

from app.core.metrics import get_metrics_collector  # noqa: E402
from app.core.rate_limiter import get_rate_limiter  # noqa: E402
from app.services.generation import (  # noqa: E402
    GenerationTransport,
    PromptTemplate,
    StructuredGenerationClient,
)
from app.services.pipeline import HealthPipeline  # noqa: E402


class ScriptedTransport(GenerationTransport):
    """
    Transport that replays scripted outputs per prompt name.

    A scripted value that is an exception instance is raised instead of returned.
    Prompts without a script yield no output.
    """

    backend = "scripted"

    def __init__(self, outputs: Optional[Mapping[str, Any]] = None):
        self.outputs = dict(outputs or {})
        self.calls: list[tuple[str, dict]] = []

    async def invoke(self, template: PromptTemplate, schema, values: Mapping[str, Any]):
        self.calls.append((template.name, dict(values)))
        output = self.outputs.get(template.name)
        if isinstance(output, Exception):
            raise output
        return output

    def model_version(self) -> str:
        return "scripted-1"

    def called(self, prompt_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == prompt_name)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Each test starts with empty metrics and rate limit windows."""
    get_metrics_collector().reset()
    limiter = get_rate_limiter()
    limiter.reset()
    limiter.set_limit(None)
    yield
    limiter.set_limit(None)


@pytest.fixture
def make_client():
    def _make(outputs: Optional[Mapping[str, Any]] = None):
        transport = ScriptedTransport(outputs)
        return StructuredGenerationClient(transport), transport
    return _make


@pytest.fixture
def make_pipeline(make_client):
    def _make(outputs: Optional[Mapping[str, Any]] = None):
        client, transport = make_client(outputs)
        return HealthPipeline(client), transport
    return _make

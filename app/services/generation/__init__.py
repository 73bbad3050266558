"""
Structured generation: prompt templates, transports and the validating client.
"""
from app.services.generation.client import (
    StructuredGenerationClient,
    get_generation_client,
)
from app.services.generation.prompt import PromptTemplate, RenderedPrompt
from app.services.generation.transport import (
    GenerationTransport,
    MockTransport,
    OpenAICompatTransport,
    build_transport,
)

__all__ = [
    "StructuredGenerationClient",
    "get_generation_client",
    "PromptTemplate",
    "RenderedPrompt",
    "GenerationTransport",
    "MockTransport",
    "OpenAICompatTransport",
    "build_transport",
]

"""
Structured generation client.

One call = validate inputs -> invoke transport -> validate output against the
declared schema. No retries, no state kept between calls.

PHI-safe: NEVER log inputs or model output.
"""
import json
import time
from typing import Any, Mapping, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from app.core.logging import get_safe_logger
from app.services.exceptions import GenerationFailure, InvalidInputError, PipelineError
from app.services.generation.prompt import PromptTemplate
from app.services.generation.transport import GenerationTransport, build_transport

logger = get_safe_logger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)


def _extract_json_object(output: str) -> Any:
    """
    Pull the outermost JSON object out of raw model text.

    Raises:
        GenerationFailure: If no JSON object can be decoded
    """
    output = output.strip()

    # Remove markdown code fences if present
    if output.startswith("```"):
        lines = output.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        output = "\n".join(lines)

    start_idx = output.find("{")
    end_idx = output.rfind("}") + 1

    if start_idx == -1 or end_idx == 0:
        raise GenerationFailure("No JSON object found in output")

    try:
        return json.loads(output[start_idx:end_idx])
    except json.JSONDecodeError:
        raise GenerationFailure("Invalid JSON in model output")


class StructuredGenerationClient:
    """Wraps a transport with input and output schema validation."""

    def __init__(self, transport: GenerationTransport):
        self.transport = transport

    def model_version(self) -> str:
        return self.transport.model_version()

    async def generate(
        self,
        template: PromptTemplate,
        input_schema: type[BaseModel],
        output_schema: type[OutputT],
        input_values: Mapping[str, Any],
    ) -> OutputT:
        """
        Run one structured generation call.

        Raises:
            InvalidInputError: If input_values violate input_schema (transport not called)
            GenerationFailure: If the transport fails, returns nothing, or returns
                output that does not match output_schema
        """
        try:
            validated = input_schema.model_validate(dict(input_values))
        except ValidationError:
            logger.warning(
                "Generation input rejected",
                prompt=template.name,
                error_code="INVALID_INPUT",
            )
            raise InvalidInputError(f"Invalid input for {template.name}")

        start_time = time.perf_counter()
        try:
            raw = await self.transport.invoke(template, output_schema, validated.model_dump())
            data = _coerce_output(raw)
            try:
                result = output_schema.model_validate(data)
            except ValidationError as exc:
                raise GenerationFailure(
                    f"Output does not match {output_schema.__name__} schema "
                    f"({exc.error_count()} errors)"
                )
        except PipelineError as exc:
            logger.warning(
                "Generation failed",
                prompt=template.name,
                backend=self.transport.backend,
                error_code=exc.error_code.value,
                latency_ms=int((time.perf_counter() - start_time) * 1000),
            )
            raise

        logger.debug(
            "Generation succeeded",
            prompt=template.name,
            backend=self.transport.backend,
            latency_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return result


def _coerce_output(raw: Any) -> dict:
    if raw is None:
        raise GenerationFailure("No output from model")
    if isinstance(raw, str):
        raw = _extract_json_object(raw)
    if not isinstance(raw, dict):
        raise GenerationFailure("Model output is not a JSON object")
    return raw


def get_generation_client(transport: Optional[GenerationTransport] = None) -> StructuredGenerationClient:
    """Build a client over the given transport or the one selected by settings."""
    return StructuredGenerationClient(transport or build_transport())

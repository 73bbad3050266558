"""
Health pipeline orchestrator.

Text path:  idle -> identifying -> {identification_failed | identified}
            -> fetching_remedies -> {remedy_failed | complete}
Image path: idle -> analyzing -> {analysis_failed | analysis_complete}

Medicine suggestion is its own branch, triggered by the caller once a
condition exists. Stages inside one run are strictly sequential; separate runs
share no mutable state. Every terminal state carries a value or an error.

PHI-safe: Metrics only, no content logging.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.core.logging import get_safe_logger
from app.schemas.prescription import PrescriptionAnalysisResult
from app.schemas.symptoms import (
    ConditionResult,
    MedicineResult,
    ProfileContext,
    RemedyDietResult,
    SymptomCheckResult,
)
from app.services.exceptions import PipelineError
from app.services.flows import (
    analyze_prescription_image,
    analyze_prescription_image_with_status,
    identify_conditions,
    suggest_medicines,
    suggest_remedies_and_diet,
)
from app.services.generation import StructuredGenerationClient, get_generation_client

logger = get_safe_logger(__name__)


class TextPipelineState(str, Enum):
    IDLE = "idle"
    IDENTIFYING = "identifying"
    IDENTIFICATION_FAILED = "identification_failed"
    IDENTIFIED = "identified"
    FETCHING_REMEDIES = "fetching_remedies"
    REMEDY_FAILED = "remedy_failed"
    COMPLETE = "complete"


class ImagePipelineState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    ANALYSIS_FAILED = "analysis_failed"
    ANALYSIS_COMPLETE = "analysis_complete"


@dataclass
class SymptomCheckOutcome:
    """Terminal value of a text-path run."""
    state: TextPipelineState = TextPipelineState.IDLE
    condition: Optional[ConditionResult] = None
    remedies: Optional[RemedyDietResult] = None
    error: Optional[PipelineError] = None
    stage_ms: dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state == TextPipelineState.COMPLETE

    def to_result(self) -> SymptomCheckResult:
        """Combined payload. Only valid once the run is complete."""
        if not self.succeeded:
            raise ValueError(f"Symptom check not complete (state={self.state.value})")
        return SymptomCheckResult(
            conditions=self.condition.conditions,
            home_remedies=self.remedies.home_remedies,
            diet_suggestions=self.remedies.diet_suggestions,
        )


@dataclass
class PrescriptionAnalysisOutcome:
    """Terminal value of an image-path run. result is always set."""
    state: ImagePipelineState
    result: PrescriptionAnalysisResult
    stage_ms: dict[str, int] = field(default_factory=dict)


def build_symptom_keywords(symptoms: str, profile: Optional[ProfileContext] = None) -> str:
    """Merge optional profile context into the symptom text sent to identification."""
    if profile is None:
        return symptoms
    context = f"Age {profile.age}, Gender {profile.gender}"
    if profile.conditions:
        context += f", Pre-existing conditions: {profile.conditions}"
    return f"Symptoms: {symptoms}. Profile context: {context}."


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class HealthPipeline:
    """The four health operations over one structured generation client."""

    def __init__(self, client: StructuredGenerationClient):
        self.client = client

    def model_version(self) -> str:
        return self.client.model_version()

    async def identify_conditions(self, keywords: str) -> ConditionResult:
        return await identify_conditions(self.client, keywords)

    async def suggest_remedies_and_diet(self, condition: str) -> RemedyDietResult:
        return await suggest_remedies_and_diet(self.client, condition)

    async def suggest_medicines(self, condition: str) -> MedicineResult:
        return await suggest_medicines(self.client, condition)

    async def analyze_prescription_image(self, image_data_uri: str) -> PrescriptionAnalysisResult:
        return await analyze_prescription_image(self.client, image_data_uri)

    async def run_symptom_check(
        self,
        symptoms: str,
        profile: Optional[ProfileContext] = None,
    ) -> SymptomCheckOutcome:
        """
        Identify conditions, then fetch remedies and diet for them.

        Identification failure halts the run; remedies are never requested.
        Errors are returned in the outcome, not raised.
        """
        outcome = SymptomCheckOutcome()
        keywords = build_symptom_keywords(symptoms, profile)

        outcome.state = TextPipelineState.IDENTIFYING
        start = time.perf_counter()
        try:
            outcome.condition = await identify_conditions(self.client, keywords)
        except PipelineError as exc:
            outcome.state = TextPipelineState.IDENTIFICATION_FAILED
            outcome.error = exc
            outcome.stage_ms["identify"] = _elapsed_ms(start)
            self._log_text_outcome(outcome)
            return outcome
        outcome.stage_ms["identify"] = _elapsed_ms(start)
        outcome.state = TextPipelineState.IDENTIFIED

        outcome.state = TextPipelineState.FETCHING_REMEDIES
        start = time.perf_counter()
        try:
            outcome.remedies = await suggest_remedies_and_diet(
                self.client, outcome.condition.conditions
            )
        except PipelineError as exc:
            outcome.state = TextPipelineState.REMEDY_FAILED
            outcome.error = exc
        else:
            outcome.state = TextPipelineState.COMPLETE
        outcome.stage_ms["remedies"] = _elapsed_ms(start)

        self._log_text_outcome(outcome)
        return outcome

    async def run_prescription_analysis(self, image_data_uri: str) -> PrescriptionAnalysisOutcome:
        """Single-call image path; failures carry the synthesized fallback result."""
        start = time.perf_counter()
        result, fell_back = await analyze_prescription_image_with_status(
            self.client, image_data_uri
        )
        outcome = PrescriptionAnalysisOutcome(
            state=(
                ImagePipelineState.ANALYSIS_FAILED
                if fell_back
                else ImagePipelineState.ANALYSIS_COMPLETE
            ),
            result=result,
            stage_ms={"analyze": _elapsed_ms(start)},
        )
        logger.info(
            "Prescription pipeline finished",
            state=outcome.state.value,
            latency_ms=outcome.stage_ms["analyze"],
            medications_count=len(result.medications),
        )
        return outcome

    @staticmethod
    def _log_text_outcome(outcome: SymptomCheckOutcome) -> None:
        logger.info(
            "Symptom pipeline finished",
            state=outcome.state.value,
            error_code=outcome.error.error_code.value if outcome.error else None,
            latency_ms=sum(outcome.stage_ms.values()),
        )


def get_pipeline() -> HealthPipeline:
    """Build a pipeline over the generation backend selected by settings."""
    return HealthPipeline(get_generation_client())

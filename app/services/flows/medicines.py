"""
Medicine suggestion stage: OTC guidance for an identified condition.

This operation never fails outward. Any failure yields a renderable,
safety-preserving MedicineResult instead of an exception.

PHI-safe: NEVER log the condition or the suggestions.
"""
from pydantic import BaseModel, Field, field_validator

from app.core.logging import get_safe_logger
from app.core.metrics import get_metrics_collector
from app.schemas.symptoms import MedicineResult
from app.services.exceptions import PipelineError
from app.services.flows.remedies_diet import HealthConditionInput
from app.services.generation import PromptTemplate, StructuredGenerationClient

logger = get_safe_logger(__name__)

MEDICINE_DISCLAIMER = (
    "**Disclaimer:** This information is AI-generated and not a substitute for "
    "professional medical advice. Always consult a doctor or pharmacist before "
    "taking any medication. Self-treating can be dangerous."
)
FALLBACK_SUGGESTIONS = "Error loading suggestions."
FALLBACK_DISCLAIMER = "Please consult a healthcare professional."


class SuggestMedicinesOutput(BaseModel):
    suggested_medicines: str = Field(
        ...,
        alias="suggestedMedicines",
        description=(
            "A list of suggested over-the-counter (OTC) medicines appropriate for the "
            "condition. Focus on common, widely available OTC options. If no specific "
            "OTC medicines are suitable or if the condition likely requires prescription "
            "medication, state that clearly instead of suggesting inappropriate OTCs."
        ),
    )
    disclaimer: str = Field(
        default=MEDICINE_DISCLAIMER,
        description="A mandatory disclaimer about consulting healthcare professionals.",
    )

    @field_validator("disclaimer", mode="before")
    @classmethod
    def null_disclaimer_is_omitted(cls, v):
        return MEDICINE_DISCLAIMER if v is None else v

    class Config:
        populate_by_name = True


SUGGEST_MEDICINES_PROMPT = PromptTemplate(
    name="suggestMedicinesPrompt",
    system=(
        "You are a helpful assistant providing information about potential "
        "over-the-counter (OTC) medicines."
    ),
    template="""A user has described symptoms potentially related to: {{health_condition}}.

Suggest common, widely available OTC medicines that *might* help alleviate symptoms associated with this condition.

**IMPORTANT RULES:**
1.  **Only suggest OTC medicines.** Do not suggest prescription drugs.
2.  If the condition likely requires a doctor's visit or prescription medication (e.g., infections, severe pain, chronic conditions), explicitly state that and do not suggest OTCs as primary treatment.
3.  Prioritize safety. If suggesting anything, mention general types or active ingredients (e.g., "pain relievers containing ibuprofen", "antihistamines like loratadine", "cough drops") rather than specific brand names if possible, unless a brand is extremely common and representative of a category (e.g., Tylenol for acetaminophen).
4.  Always include the mandatory `disclaimer` about consulting a healthcare professional.""",
)


def _fallback_result() -> MedicineResult:
    return MedicineResult(
        suggested_medicines=FALLBACK_SUGGESTIONS,
        disclaimer=FALLBACK_DISCLAIMER,
    )


async def suggest_medicines(
    client: StructuredGenerationClient,
    condition: str,
) -> MedicineResult:
    """
    Suggest OTC medicines for a condition.

    Always returns a MedicineResult with a non-empty disclaimer.
    """
    metrics = get_metrics_collector()

    try:
        output = await client.generate(
            SUGGEST_MEDICINES_PROMPT,
            HealthConditionInput,
            SuggestMedicinesOutput,
            {"health_condition": condition},
        )
    except PipelineError as exc:
        logger.warning(
            "Medicine suggestion fell back",
            stage="medicines",
            fallback=True,
            error_code=exc.error_code.value,
        )
        metrics.record_fallback("suggest_medicines")
        return _fallback_result()

    if not output.suggested_medicines.strip():
        logger.warning("Medicine suggestion empty", stage="medicines", fallback=True)
        metrics.record_fallback("suggest_medicines")
        return _fallback_result()

    disclaimer = output.disclaimer
    if not disclaimer.strip():
        logger.debug("Medicine disclaimer repaired", stage="medicines", repaired_fields="disclaimer")
        disclaimer = MEDICINE_DISCLAIMER

    return MedicineResult(
        suggested_medicines=output.suggested_medicines,
        disclaimer=disclaimer,
    )

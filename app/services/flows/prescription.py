"""
Prescription image analysis stage.

Reads a prescription photo (base64 data URI) into a structured medication
list. Never fails outward: omissions are repaired field by field, and a total
generation failure yields a synthesized result with an empty medication list.

PHI-safe: NEVER log the image or any extracted content. Counts only.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.logging import get_safe_logger
from app.core.metrics import get_metrics_collector
from app.schemas.prescription import Medication, PrescriptionAnalysisResult
from app.services.exceptions import PipelineError
from app.services.generation import PromptTemplate, StructuredGenerationClient

logger = get_safe_logger(__name__)

PRESCRIPTION_DISCLAIMER = (
    "**Important Disclaimer:** This analysis is AI-generated and for informational "
    "purposes only. It is NOT a substitute for professional medical advice, diagnosis, "
    "or treatment. ALWAYS consult with a qualified healthcare provider or pharmacist "
    "regarding any medical condition or treatment. Do not disregard professional "
    "medical advice or delay in seeking it because of something you have read or "
    "interpreted from this AI-generated analysis. Reliance on any information provided "
    "by this AI is solely at your own risk."
)
FALLBACK_SUMMARY = (
    "Could not analyze the prescription. The image might be unclear or not a valid prescription."
)

_OPTIONAL_MEDICATION_FIELDS = ("frequency", "duration", "notes")


class AnalyzePrescriptionInput(BaseModel):
    prescription_image_data_uri: str = Field(
        ...,
        min_length=len("data:"),
        pattern=r"^data:",
        description=(
            "A photo of a medical prescription, as a data URI that must include a MIME "
            "type and use Base64 encoding. Expected format: "
            "'data:<mimetype>;base64,<encoded_data>'."
        ),
    )


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _repair_medication(item: Any) -> Optional[dict]:
    """Keep an entry only if it has both a name and a dosage."""
    if not isinstance(item, dict):
        return None
    name = _clean_text(item.get("name"))
    dosage = _clean_text(item.get("dosage"))
    if not name or not dosage:
        return None
    repaired = {"name": name, "dosage": dosage}
    for key in _OPTIONAL_MEDICATION_FIELDS:
        value = _clean_text(item.get(key))
        if value is not None:
            repaired[key] = value
    return repaired


class AnalyzePrescriptionOutput(BaseModel):
    medications: list[Medication] = Field(
        default_factory=list,
        description=(
            "An array containing details for each identified medication. If the image "
            "is unclear or not a prescription, this array should be empty."
        ),
    )
    overall_instructions: Optional[str] = Field(
        default=None,
        alias="overallInstructions",
        description="Any general instructions from the doctor not specific to a single medication.",
    )
    summary: str = Field(
        default=FALLBACK_SUMMARY,
        description=(
            "A brief confirmation that the prescription was analyzed, or a clear "
            'statement if it could not be analyzed (e.g., "Image unclear", "Not a prescription").'
        ),
    )
    disclaimer: str = Field(default=PRESCRIPTION_DISCLAIMER, description="Mandatory disclaimer.")

    @field_validator("medications", mode="before")
    @classmethod
    def drop_partial_medications(cls, v):
        if v is None:
            return []
        if not isinstance(v, list):
            return v
        return [m for m in (_repair_medication(item) for item in v) if m is not None]

    @field_validator("overall_instructions", mode="before")
    @classmethod
    def blank_instructions_are_omitted(cls, v):
        return _clean_text(v) if isinstance(v, str) else v

    @field_validator("summary", mode="before")
    @classmethod
    def null_summary_is_omitted(cls, v):
        return FALLBACK_SUMMARY if v is None else v

    @field_validator("disclaimer", mode="before")
    @classmethod
    def null_disclaimer_is_omitted(cls, v):
        return PRESCRIPTION_DISCLAIMER if v is None else v

    class Config:
        populate_by_name = True


ANALYZE_PRESCRIPTION_PROMPT = PromptTemplate(
    name="analyzePrescriptionPrompt",
    system=(
        "You are an AI assistant specialized in analyzing medical prescriptions from "
        "images. Your task is to extract medication details accurately."
    ),
    template="""Analyze the provided prescription image: {{media prescription_image_data_uri}}

1.  **Identify Medications:** Carefully identify each distinct medication listed on the prescription.
2.  **Extract Details:** For *each* medication identified, extract the following details:
    *   `name`: The name of the drug.
    *   `dosage`: The strength or amount per dose (e.g., "500mg", "1 tablet", "10ml").
    *   `frequency`: How often to take it (e.g., "Twice daily", "Once at bedtime", "Every 6 hours as needed"). If not specified, omit this field.
    *   `duration`: For how long to take it (e.g., "10 days", "Finish the course"). If not specified, omit this field.
    *   `notes`: Any other specific instructions for that medication (e.g., "Take with food", "Avoid grapefruit"). If none, omit this field.
    A medication without a readable name or dosage must not be listed. Never guess values that are not in the image.
3.  **Overall Instructions:** Extract any general instructions that apply to the whole prescription or are not tied to a specific drug (e.g., "Follow up in 2 weeks") into `overallInstructions`. If none, omit this field.
4.  **Summarize:** Provide a brief `summary` confirming the analysis (e.g., "Prescription analyzed.") or stating why it failed (e.g., "Analysis failed: Image is unclear.", "Analysis failed: Document does not appear to be a medical prescription.").
5.  **Medications list:** If no medications are found or the image is invalid, the `medications` array MUST be empty.
6.  **Disclaimer:** Always include the mandatory `disclaimer`.""",
)


def fallback_analysis() -> PrescriptionAnalysisResult:
    """Result used when the model produced no usable output at all."""
    return PrescriptionAnalysisResult(
        medications=[],
        summary=FALLBACK_SUMMARY,
        disclaimer=PRESCRIPTION_DISCLAIMER,
    )


async def analyze_prescription_image_with_status(
    client: StructuredGenerationClient,
    image_data_uri: str,
) -> tuple[PrescriptionAnalysisResult, bool]:
    """
    Analyze a prescription image.

    Returns (result, fell_back) where fell_back is True when the result was
    synthesized because generation failed entirely.
    """
    try:
        output = await client.generate(
            ANALYZE_PRESCRIPTION_PROMPT,
            AnalyzePrescriptionInput,
            AnalyzePrescriptionOutput,
            {"prescription_image_data_uri": image_data_uri},
        )
    except PipelineError as exc:
        logger.warning(
            "Prescription analysis fell back",
            stage="prescription",
            fallback=True,
            error_code=exc.error_code.value,
        )
        get_metrics_collector().record_fallback("analyze_prescription")
        return fallback_analysis(), True

    repaired = []
    summary = output.summary
    if not summary.strip():
        summary = FALLBACK_SUMMARY
        repaired.append("summary")
    disclaimer = output.disclaimer
    if not disclaimer.strip():
        disclaimer = PRESCRIPTION_DISCLAIMER
        repaired.append("disclaimer")

    if repaired:
        logger.debug(
            "Prescription analysis repaired",
            stage="prescription",
            repaired_fields=",".join(repaired),
        )

    result = PrescriptionAnalysisResult(
        medications=output.medications,
        overall_instructions=output.overall_instructions,
        summary=summary,
        disclaimer=disclaimer,
    )
    logger.info(
        "Prescription analysis completed",
        stage="prescription",
        medications_count=len(result.medications),
    )
    return result, False


async def analyze_prescription_image(
    client: StructuredGenerationClient,
    image_data_uri: str,
) -> PrescriptionAnalysisResult:
    """Analyze a prescription image. Always returns a displayable result."""
    result, _ = await analyze_prescription_image_with_status(client, image_data_uri)
    return result

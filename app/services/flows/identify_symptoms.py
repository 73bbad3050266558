"""
Symptom identification stage.

Takes free-text symptoms (optionally with profile sentences already merged in)
and returns 2-3 candidate conditions as free text.

PHI-safe: NEVER log keywords or conditions.
"""
from pydantic import BaseModel, Field

from app.core.logging import get_safe_logger
from app.schemas.symptoms import ConditionResult
from app.services.exceptions import GenerationFailure, IdentificationFailure
from app.services.generation import PromptTemplate, StructuredGenerationClient

logger = get_safe_logger(__name__)


class IdentifySymptomsInput(BaseModel):
    keywords: str = Field(
        ...,
        min_length=1,
        description=(
            "Keywords describing the symptoms experienced by the user, potentially "
            "including profile context (age, gender, pre-existing conditions)."
        ),
    )

    class Config:
        str_strip_whitespace = True


class IdentifySymptomsOutput(BaseModel):
    conditions: str = Field(
        ...,
        description=(
            "A list of 2-3 potential health conditions matching the symptoms and "
            "profile context (if provided). Be concise."
        ),
    )


IDENTIFY_SYMPTOMS_PROMPT = PromptTemplate(
    name="identifySymptomsPrompt",
    system=(
        "You are a medical chatbot designed to identify potential health conditions "
        "based on symptoms and basic user profile information if provided."
    ),
    template="""Based on the following information, identify 2-3 potential health conditions. Consider the user's age, gender, and pre-existing conditions if mentioned in the input, as these can influence likelihood.

Input: {{keywords}}

List the potential conditions concisely in the `conditions` field.""",
)


async def identify_conditions(
    client: StructuredGenerationClient,
    keywords: str,
) -> ConditionResult:
    """
    Identify candidate conditions from symptom text.

    Raises:
        InvalidInputError: If keywords is empty
        IdentificationFailure: If generation fails or conditions is blank
    """
    try:
        output = await client.generate(
            IDENTIFY_SYMPTOMS_PROMPT,
            IdentifySymptomsInput,
            IdentifySymptomsOutput,
            {"keywords": keywords},
        )
    except GenerationFailure as exc:
        logger.warning(
            "Symptom identification failed",
            stage="identify",
            error_code=exc.error_code.value,
        )
        raise IdentificationFailure() from exc

    if not output.conditions.strip():
        logger.warning("Symptom identification returned no conditions", stage="identify")
        raise IdentificationFailure()

    return ConditionResult(conditions=output.conditions)

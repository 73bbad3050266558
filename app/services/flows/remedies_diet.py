"""
Remedy/diet stage: home remedies and a diet plan for an identified condition.
Both fields are mandatory; a response missing either is a stage failure.

PHI-safe: NEVER log the condition or the suggestions.
"""
from pydantic import BaseModel, Field

from app.core.logging import get_safe_logger
from app.schemas.symptoms import RemedyDietResult
from app.services.exceptions import GenerationFailure, RemedyFailure
from app.services.generation import PromptTemplate, StructuredGenerationClient

logger = get_safe_logger(__name__)


class HealthConditionInput(BaseModel):
    health_condition: str = Field(
        ...,
        min_length=1,
        description="The identified health condition.",
    )

    class Config:
        str_strip_whitespace = True


class SuggestRemediesAndDietOutput(BaseModel):
    home_remedies: str = Field(
        ...,
        alias="homeRemedies",
        description="A list of suggested home remedies.",
    )
    diet_suggestions: str = Field(
        ...,
        alias="dietSuggestions",
        description="A suggested diet plan.",
    )

    class Config:
        populate_by_name = True


SUGGEST_REMEDIES_AND_DIET_PROMPT = PromptTemplate(
    name="suggestRemediesAndDietPrompt",
    system="You are a healthcare assistant.",
    template=(
        "A user has been identified as suffering from the following condition: "
        "{{health_condition}}.\n\n"
        "Suggest home remedies (`homeRemedies`) and a diet plan (`dietSuggestions`) "
        "to help them manage their condition at home. Both fields are required."
    ),
)


async def suggest_remedies_and_diet(
    client: StructuredGenerationClient,
    condition: str,
) -> RemedyDietResult:
    """
    Suggest home remedies and diet for a condition.

    Raises:
        InvalidInputError: If condition is empty
        RemedyFailure: If generation fails or either field is missing
    """
    try:
        output = await client.generate(
            SUGGEST_REMEDIES_AND_DIET_PROMPT,
            HealthConditionInput,
            SuggestRemediesAndDietOutput,
            {"health_condition": condition},
        )
    except GenerationFailure as exc:
        logger.warning(
            "Remedy/diet generation failed",
            stage="remedies",
            error_code=exc.error_code.value,
        )
        raise RemedyFailure() from exc

    # Blank text counts as missing
    if not output.home_remedies.strip() or not output.diet_suggestions.strip():
        logger.warning("Remedy/diet response incomplete", stage="remedies")
        raise RemedyFailure()

    return RemedyDietResult(
        home_remedies=output.home_remedies,
        diet_suggestions=output.diet_suggestions,
    )

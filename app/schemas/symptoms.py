"""
Schemas for the symptom (text) path: profile context, stage results and
request bodies.
PHI note: symptom text, profile and conditions are sensitive - NEVER log.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.config import get_settings


class ProfileContext(BaseModel):
    """Optional caller-owned profile merged into the symptom text."""

    age: int = Field(..., ge=1, le=120, description="Age in years")
    gender: Literal["male", "female", "other", "prefer_not_to_say"] = Field(
        ...,
        description="Gender option"
    )
    conditions: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Pre-existing conditions, free text"
    )


class ConditionResult(BaseModel):
    """2-3 candidate conditions as free text."""
    conditions: str = Field(..., description="Candidate conditions")


class RemedyDietResult(BaseModel):
    """Home remedies and diet guidance. Both fields are mandatory."""
    home_remedies: str = Field(..., alias="homeRemedies", description="Suggested home remedies")
    diet_suggestions: str = Field(..., alias="dietSuggestions", description="Suggested diet plan")

    class Config:
        populate_by_name = True


class MedicineResult(BaseModel):
    """OTC medicine guidance. Disclaimer is always non-empty."""
    suggested_medicines: str = Field(
        ...,
        alias="suggestedMedicines",
        description="Suggested over-the-counter medicines"
    )
    disclaimer: str = Field(..., min_length=1, description="Mandatory disclaimer")

    class Config:
        populate_by_name = True


class SymptomCheckResult(BaseModel):
    """Outcome of the full text path: conditions plus remedies and diet."""
    conditions: str = Field(..., description="Identified candidate conditions")
    home_remedies: str = Field(..., alias="homeRemedies")
    diet_suggestions: str = Field(..., alias="dietSuggestions")

    class Config:
        populate_by_name = True


# === Request bodies ===

class SymptomCheckRequest(BaseModel):
    """Request body for POST /v1/symptoms/check."""

    symptoms: str = Field(
        ...,
        max_length=4000,
        description="Natural-language description of the symptoms"
    )
    profile: Optional[ProfileContext] = Field(
        default=None,
        description="Optional profile context"
    )

    @field_validator("symptoms", mode="after")
    @classmethod
    def symptoms_long_enough(cls, v: str) -> str:
        min_length = get_settings().min_symptom_length
        if len(v.strip()) < min_length:
            raise ValueError(f"Please describe your symptoms in at least {min_length} characters.")
        return v


class IdentifyRequest(BaseModel):
    """Request body for POST /v1/symptoms/identify."""

    keywords: str = Field(
        ...,
        min_length=1,
        max_length=6000,
        description="Symptom text, possibly with profile context already merged in"
    )


class HealthConditionRequest(BaseModel):
    """Request body for POST /v1/remedies and POST /v1/medicines."""

    health_condition: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        alias="healthCondition",
        description="An identified health condition"
    )

    class Config:
        populate_by_name = True

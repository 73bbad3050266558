"""
Schemas for prescription image analysis.
PHI note: images and extracted medications are sensitive - NEVER log.
"""
from typing import Optional

from pydantic import BaseModel, Field


class Medication(BaseModel):
    """One medication entry read from a prescription."""
    name: str = Field(..., min_length=1, description="The name of the medication.")
    dosage: str = Field(
        ...,
        min_length=1,
        description='The dosage of the medication (e.g., "500mg", "1 tablet").'
    )
    frequency: Optional[str] = Field(
        default=None,
        description='How often the medication should be taken (e.g., "twice a day", "before food").'
    )
    duration: Optional[str] = Field(
        default=None,
        description='How long the medication should be taken for (e.g., "10 days", "until finished").'
    )
    notes: Optional[str] = Field(
        default=None,
        description="Any other relevant instructions or notes for this specific medication."
    )


class PrescriptionAnalysisResult(BaseModel):
    """
    Structured prescription analysis.
    medications is never null; summary and disclaimer are never empty.
    """
    medications: list[Medication] = Field(default_factory=list)
    overall_instructions: Optional[str] = Field(default=None, alias="overallInstructions")
    summary: str = Field(..., min_length=1)
    disclaimer: str = Field(..., min_length=1)

    class Config:
        populate_by_name = True


class PrescriptionAnalyzeRequest(BaseModel):
    """Request body for POST /v1/prescriptions/analyze."""

    prescription_image_data_uri: str = Field(
        ...,
        min_length=1,
        alias="prescriptionImageDataUri",
        description="Prescription photo as 'data:<mimetype>;base64,<encoded_data>'"
    )

    class Config:
        populate_by_name = True

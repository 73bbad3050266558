"""
Pipeline stages. Each module keeps its prompt template next to its input and
output schemas so the safety rules in a prompt can be audited in one place.
"""
from app.services.flows.identify_symptoms import identify_conditions
from app.services.flows.medicines import suggest_medicines
from app.services.flows.prescription import (
    analyze_prescription_image,
    analyze_prescription_image_with_status,
)
from app.services.flows.remedies_diet import suggest_remedies_and_diet

__all__ = [
    "identify_conditions",
    "suggest_remedies_and_diet",
    "suggest_medicines",
    "analyze_prescription_image",
    "analyze_prescription_image_with_status",
]

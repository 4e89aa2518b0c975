# backend/rxscore/services/validation.py
from typing import List

from rxscore.schemas import PatientInput, ValidationIssue


def validate_patient(p: PatientInput) -> List[ValidationIssue]:
    """
    Request-level plausibility checks, run before the engine.
    The engine itself accepts anything; this is where bad intake is turned away.
    """
    issues = []

    def add(field: str, message: str):
        issues.append(ValidationIssue(field=field, message=message))

    if not p.name.strip():
        add("name", "Name is required.")

    if p.age < 0 or p.age > 120:
        add("age", "Age must be between 0 and 120.")

    if p.height < 0 or (p.height > 0 and (p.height < 90 or p.height > 250)):
        add("height", "Height must be between 90 and 250 cm when provided.")

    if p.weight < 0 or (p.weight > 0 and (p.weight < 25 or p.weight > 350)):
        add("weight", "Weight must be between 25 and 350 kg when provided.")

    if (0 < p.bp_systolic < 50) or (0 < p.bp_diastolic < 30):
        add("bloodPressure", "Blood pressure values are implausible.")

    hypertensive = any(c.strip().lower() == "hypertension" for c in p.conditions)
    if hypertensive and (p.bp_systolic == 0 or p.bp_diastolic == 0):
        add("bloodPressure", "Blood pressure is required when hypertension is selected.")

    return issues

# backend/rxscore/services/plan.py
from typing import Iterable, List, Tuple

from rxscore.schemas import NO_MEDICATION, NOT_APPLICABLE, Alternative, Contraindication, Plan
from rxscore.services.classifier import is_pde5_inhibitor
from rxscore.services.findings import FindingSet, PatientProfile
from rxscore.services import rule_table

DEFERRED_CLAUSE = "Safety blockers present; pharmacotherapy deferred."
INDICATED_CLAUSE = "PDE5 inhibitor indicated; starting conservatively due to risk factors."

MIN_CONFIDENCE = 0.6
DEFERRED_PLAN_CONFIDENCE = 0.4
REVIEWED_ALTERNATIVE_FLOOR = 0.7


def risk_factor_clauses(p: PatientProfile) -> List[str]:
    factors = [
        (p.senior, "Age >65"),
        (p.kidney_disease, "Renal impairment"),
        (p.liver_disease, "Hepatic impairment"),
        (p.alpha_blocker, "Alpha-blocker co-therapy"),
        (p.cyp3a4, "CYP3A4 inhibitor present"),
        (p.heart_disease, "Cardiovascular history"),
        (p.pregnant, "Pregnancy"),
    ]
    return [label for present, label in factors if present]


def needs_conservative_dose(p: PatientProfile) -> bool:
    # Pregnancy is reported in the rationale but does not change the tier.
    return (p.senior or p.kidney_disease or p.liver_disease or p.alpha_blocker
            or p.cyp3a4 or p.hypertension or p.heart_disease)


def derive_plan(findings: FindingSet, p: PatientProfile) -> Plan:
    if findings.has_blocker:
        medication, dosage, duration = NO_MEDICATION, NOT_APPLICABLE, NOT_APPLICABLE
        lead = DEFERRED_CLAUSE
    else:
        medication = rule_table.DEFAULT_MEDICATION
        dosage, duration = rule_table.STANDARD_DOSAGE, rule_table.STANDARD_DURATION
        if needs_conservative_dose(p):
            dosage, duration = rule_table.CONSERVATIVE_DOSAGE, rule_table.CONSERVATIVE_DURATION
        lead = INDICATED_CLAUSE

    return Plan(
        medication=medication,
        dosage=dosage,
        duration=duration,
        rationale="; ".join([lead] + risk_factor_clauses(p)),
    )


def plan_confidence_for(confidence: float, plan: Plan) -> float:
    if plan.medication == NO_MEDICATION:
        return DEFERRED_PLAN_CONFIDENCE
    return confidence


def estimate_confidence(score: int, plan: Plan) -> Tuple[float, float]:
    """Return (confidenceScore, planConfidence)."""
    confidence = max(MIN_CONFIDENCE, 1 - score / 120)
    return confidence, plan_confidence_for(confidence, plan)


def review_plan_confidence(value: float, medication: str,
                           contraindications: Iterable[Contraindication]) -> float:
    """
    Floor applied when a reviewer's plan confidence replaces ours: a non-PDE5
    medication with no HIGH contraindication on file never drops below 0.7.
    """
    value = max(0.0, min(1.0, value))
    if medication == NO_MEDICATION or is_pde5_inhibitor(medication):
        return value
    if any(c.severity == "HIGH" for c in contraindications):
        return value
    return max(value, REVIEWED_ALTERNATIVE_FLOOR)


def recommend_alternatives(plan: Plan) -> List[Alternative]:
    menu = rule_table.ALTERNATIVES_BLOCKED if plan.medication == NO_MEDICATION \
        else rule_table.ALTERNATIVES_AVAILABLE
    return [Alternative(option=option, confidence=conf) for option, conf in menu]

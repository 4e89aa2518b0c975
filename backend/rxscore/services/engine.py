# backend/rxscore/services/engine.py
import logging
from typing import List

from rxscore.schemas import DiagnosticResult, PatientInput, RecommendationConfidence
from rxscore.services.findings import FindingSet, build_profile, collect_findings
from rxscore.services.plan import derive_plan, estimate_confidence, recommend_alternatives
from rxscore.services.scoring import raw_score, score_findings

log = logging.getLogger("engine")

NO_ISSUES = "None"


def flatten_issues(findings: FindingSet) -> List[str]:
    issues = [f"[{i.severity}] Interaction: {i.pair} - {i.note}" for i in findings.interactions]
    issues += [
        f"[{c.severity}] Contraindication: {c.condition_or_allergy} - {c.note}"
        for c in findings.contraindications
    ]
    issues += [
        f"[{d.severity}] Dosing: {d.factor} - {d.recommendation}"
        for d in findings.dosing_concerns
    ]
    return issues or [NO_ISSUES]


def run_safety_engine(patient: PatientInput) -> DiagnosticResult:
    """
    Deterministic evaluation of one intake: findings, score, plan, confidence
    and alternatives. Never raises on patient data.
    """
    profile = build_profile(patient)
    findings = collect_findings(profile)

    score, level = score_findings(findings)
    plan = derive_plan(findings, profile)
    # confidence follows the formula score, not the empty-set baseline
    confidence, plan_confidence = estimate_confidence(raw_score(findings), plan)

    log.debug(
        "evaluated intake: %d findings, score=%d level=%s medication=%s",
        len(findings), score, level, plan.medication,
    )

    return DiagnosticResult(
        risk_score=score,
        risk_level=level,
        issues=flatten_issues(findings),
        interactions=list(findings.interactions),
        contraindications=list(findings.contraindications),
        dosing_concerns=list(findings.dosing_concerns),
        plan=plan,
        alternatives=recommend_alternatives(plan),
        confidence_score=confidence,
        recommendation_confidence=RecommendationConfidence(plan=plan_confidence),
        source="rules",
    )

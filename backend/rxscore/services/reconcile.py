# backend/rxscore/services/reconcile.py
import logging
from typing import Any, Dict, Iterable, List, Tuple

from rxscore.schemas import (
    SEVERITY_RANK,
    DiagnosticResult,
    RecommendationConfidence,
    SourcedInteraction,
    UntrustedResult,
)
from rxscore.services.engine import NO_ISSUES
from rxscore.services.plan import plan_confidence_for, review_plan_confidence
from rxscore.services.scoring import higher_level

log = logging.getLogger("reconcile")

RULES_SOURCE = "rules"
LOOKUP_SOURCE = "lookup"
SOURCE_PRECEDENCE = (RULES_SOURCE, LOOKUP_SOURCE)


def merge_issues(*issue_lists: Iterable[str]) -> List[str]:
    seen = set()
    merged = []
    for issues in issue_lists:
        for issue in issues:
            if issue not in seen:
                seen.add(issue)
                merged.append(issue)
    real = [i for i in merged if i != NO_ISSUES]
    return real or [NO_ISSUES]


def reconcile(rules: DiagnosticResult, other: Any) -> DiagnosticResult:
    """
    Merge the engine result with a second, untrusted result.

    Findings always come from the engine. Risk takes the worse of the two,
    plan/alternatives/confidence prefer the other source when it sent usable values.
    """
    other = UntrustedResult.from_payload(other)

    plan = other.plan or rules.plan
    alternatives = other.alternatives or rules.alternatives
    confidence = other.confidence_score if other.confidence_score is not None else rules.confidence_score

    if other.plan is not None and other.plan_confidence is not None:
        plan_confidence = other.plan_confidence
    elif other.plan is not None:
        plan_confidence = plan_confidence_for(confidence, plan)
    else:
        plan_confidence = rules.recommendation_confidence.plan
    plan_confidence = review_plan_confidence(plan_confidence, plan.medication, rules.contraindications)

    source = f"{other.source}+{RULES_SOURCE}" if other.source else f"{RULES_SOURCE}+model"

    merged = DiagnosticResult(
        risk_score=max(rules.risk_score, other.risk_score or 0),
        risk_level=higher_level(other.risk_level, rules.risk_level),
        # "None" survives only when neither side reports a real issue
        issues=merge_issues(other.issues, rules.issues),
        interactions=list(rules.interactions),
        contraindications=list(rules.contraindications),
        dosing_concerns=list(rules.dosing_concerns),
        plan=plan,
        alternatives=alternatives,
        confidence_score=confidence,
        recommendation_confidence=RecommendationConfidence(plan=plan_confidence),
        source=source,
    )
    if merged.risk_level != rules.risk_level or merged.plan.medication != rules.plan.medication:
        log.info(
            "reconciled %s: level %s -> %s, medication %s -> %s",
            source, rules.risk_level, merged.risk_level,
            rules.plan.medication, merged.plan.medication,
        )
    return merged


def _source_rank(label: str) -> Tuple[int, str]:
    if label in SOURCE_PRECEDENCE:
        return SOURCE_PRECEDENCE.index(label), ""
    return len(SOURCE_PRECEDENCE), label


def _interaction_key(pair: str, note: str) -> str:
    return f"{pair.lower()}|{note.lower()}"


def merge_interactions(*sources: Tuple[str, Iterable[Any]]) -> List[SourcedInteraction]:
    """
    Merge interaction lists from several labelled sources.

    Entries sharing pair+note (case-insensitive) collapse to one: the higher
    severity wins, ties go to the source with the higher precedence. The
    outcome does not depend on the order entries are seen in.
    """
    kept: Dict[str, SourcedInteraction] = {}
    for label, entries in sources:
        for entry in entries:
            candidate = SourcedInteraction(
                pair=entry.pair, severity=entry.severity, note=entry.note, source=label,
            )
            key = _interaction_key(candidate.pair, candidate.note)
            current = kept.get(key)
            if current is None or _outranks(candidate, current):
                kept[key] = candidate
    return list(kept.values())


def _outranks(a: SourcedInteraction, b: SourcedInteraction) -> bool:
    rank_a, rank_b = SEVERITY_RANK[a.severity], SEVERITY_RANK[b.severity]
    if rank_a != rank_b:
        return rank_a > rank_b
    source_a, source_b = _source_rank(a.source), _source_rank(b.source)
    if source_a != source_b:
        return source_a < source_b
    # same key, differently cased text
    return (a.pair, a.note) < (b.pair, b.note)

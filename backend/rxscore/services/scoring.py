# backend/rxscore/services/scoring.py
from typing import Iterable, Tuple

from rxscore.schemas import SEVERITY_RANK
from rxscore.services.findings import Finding, FindingSet
from rxscore.services.rule_table import SEVERITY_WEIGHT

BASE_SCORE = 5
HIGH_RISK_SCORE = 60
MEDIUM_RISK_SCORE = 30
# Reported when nothing was found at all
EMPTY_SCORE = 12
EMPTY_LEVEL = "LOW"


def raw_score(findings: Iterable[Finding]) -> int:
    score = BASE_SCORE + sum(SEVERITY_WEIGHT.get(f.severity, 0) for f in findings)
    return max(0, min(100, score))


def max_severity(findings: Iterable[Finding]) -> str:
    highest = "LOW"
    for f in findings:
        if SEVERITY_RANK.get(f.severity, 0) > SEVERITY_RANK[highest]:
            highest = f.severity
    return highest


def risk_level(score: int, severity: str) -> str:
    if severity == "HIGH" or score >= HIGH_RISK_SCORE:
        return "HIGH"
    if severity == "MEDIUM" or score >= MEDIUM_RISK_SCORE:
        return "MEDIUM"
    return "LOW"


def score_findings(findings: FindingSet) -> Tuple[int, str]:
    """Return the reported (riskScore, riskLevel) for a finding set."""
    if len(findings) == 0:
        return EMPTY_SCORE, EMPTY_LEVEL
    score = raw_score(findings)
    return score, risk_level(score, max_severity(findings))


def higher_level(a, b) -> str:
    """Higher of two risk levels; anything unrecognised ranks as LOW."""
    rank_a = SEVERITY_RANK.get(a, 0) if isinstance(a, str) else 0
    rank_b = SEVERITY_RANK.get(b, 0) if isinstance(b, str) else 0
    if rank_a >= rank_b:
        return a if isinstance(a, str) and a in SEVERITY_RANK else "LOW"
    return b

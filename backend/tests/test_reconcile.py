"""Tests for cross-source reconciliation and interaction merging."""

import pytest

from rxscore.schemas import ExternalInteraction, Interaction, PatientInput, UntrustedResult
from rxscore.services.engine import run_safety_engine
from rxscore.services.reconcile import merge_interactions, reconcile


@pytest.fixture
def clean_rules():
    return run_safety_engine(PatientInput(name="Pat", age=45))


@pytest.fixture
def blocked_rules():
    return run_safety_engine(PatientInput(name="Pat", medications="Nitroglycerin"))


def _model_result(**overrides):
    data = {
        "riskScore": 35,
        "riskLevel": "MEDIUM",
        "issues": ["[MEDIUM] Dosing: Age - start low"],
        "interactions": [{"pair": "X + Y", "severity": "HIGH", "note": "made up"}],
        "plan": {
            "medication": "Sildenafil",
            "dosage": "25mg on demand",
            "duration": "30 Days",
            "rationale": "Conservative start.",
        },
        "alternatives": [{"option": "Behavioral therapy", "confidence": 0.55}],
        "confidenceScore": 0.8,
        "recommendationConfidence": {"plan": 0.75},
        "source": "model",
    }
    data.update(overrides)
    return data


class TestReconcile:
    def test_prefers_model_plan_and_keeps_rule_findings(self, blocked_rules):
        merged = reconcile(blocked_rules, _model_result())
        assert merged.interactions == blocked_rules.interactions
        assert merged.contraindications == blocked_rules.contraindications
        assert merged.dosing_concerns == blocked_rules.dosing_concerns
        assert merged.plan.medication == "Sildenafil"
        assert merged.plan.dosage == "25mg on demand"
        assert [a.option for a in merged.alternatives] == ["Behavioral therapy"]
        assert merged.confidence_score == 0.8

    def test_higher_risk_wins(self, blocked_rules, clean_rules):
        merged = reconcile(blocked_rules, _model_result(riskLevel="LOW", riskScore=10))
        assert merged.risk_level == "HIGH"
        assert merged.risk_score == blocked_rules.risk_score

        merged = reconcile(clean_rules, _model_result(riskLevel="HIGH", riskScore=80))
        assert merged.risk_level == "HIGH"
        assert merged.risk_score == 80

    def test_unknown_level_ranks_lowest(self, clean_rules):
        merged = reconcile(clean_rules, _model_result(riskLevel="CRITICAL"))
        assert merged.risk_level == "LOW"

    def test_issues_are_unioned(self, blocked_rules):
        dup = blocked_rules.issues[0]
        merged = reconcile(blocked_rules, _model_result(issues=[dup, "Model-only issue"]))
        assert sorted(merged.issues) == sorted(set(blocked_rules.issues) | {"Model-only issue"})
        assert len(merged.issues) == len(set(merged.issues))

    def test_none_sentinel_dropped_when_model_has_issues(self, clean_rules):
        assert clean_rules.issues == ["None"]
        merged = reconcile(clean_rules, _model_result(issues=["Model-only issue"]))
        assert merged.issues == ["Model-only issue"]

        merged = reconcile(clean_rules, _model_result(issues=[]))
        assert merged.issues == ["None"]

    def test_source_tag(self, clean_rules):
        assert reconcile(clean_rules, _model_result()).source == "model+rules"
        assert reconcile(clean_rules, _model_result(source=None)).source == "rules+model"

    def test_malformed_payload_falls_back_to_rules(self, clean_rules):
        for payload in (None, "not json", [1, 2, 3], {"riskScore": "abc", "plan": "Sildenafil"}):
            merged = reconcile(clean_rules, payload)
            assert merged.plan == clean_rules.plan
            assert merged.alternatives == clean_rules.alternatives
            assert merged.confidence_score == clean_rules.confidence_score
            assert merged.risk_score == clean_rules.risk_score
            assert merged.risk_level == clean_rules.risk_level
            assert merged.source == "rules+model"

    def test_partial_plan_gets_defaults(self, clean_rules):
        merged = reconcile(clean_rules, _model_result(plan={"medication": "Vardenafil"}))
        assert merged.plan.medication == "Vardenafil"
        assert merged.plan.dosage == "N/A"
        assert merged.plan.duration == "N/A"

    def test_string_alternatives_are_accepted(self, clean_rules):
        merged = reconcile(clean_rules, _model_result(alternatives=["Vacuum erection device", 7]))
        assert [(a.option, a.confidence) for a in merged.alternatives] == [("Vacuum erection device", 0.5)]

    def test_out_of_range_confidence_is_clamped(self, clean_rules):
        merged = reconcile(clean_rules, _model_result(confidenceScore=1.7))
        assert merged.confidence_score == 1.0


class TestPlanConfidenceReview:
    def test_floor_for_non_pde5_choice(self, clean_rules):
        payload = _model_result(
            plan={"medication": "Alprostadil", "dosage": "10mcg"},
            recommendationConfidence={"plan": 0.3},
        )
        merged = reconcile(clean_rules, payload)
        assert merged.recommendation_confidence.plan == 0.7

    def test_no_floor_for_pde5_choice(self, clean_rules):
        payload = _model_result(recommendationConfidence={"plan": 0.3})
        merged = reconcile(clean_rules, payload)
        assert merged.recommendation_confidence.plan == 0.3

    def test_no_floor_with_high_contraindication(self, blocked_rules):
        payload = _model_result(
            plan={"medication": "Alprostadil"},
            recommendationConfidence={"plan": 0.3},
        )
        merged = reconcile(blocked_rules, payload)
        assert merged.recommendation_confidence.plan == 0.3

    def test_deferred_model_plan_without_confidence(self, clean_rules):
        payload = _model_result(plan={"medication": "None"}, recommendationConfidence=None)
        merged = reconcile(clean_rules, payload)
        assert merged.recommendation_confidence.plan == 0.4

    def test_rules_plan_keeps_rules_confidence(self, blocked_rules):
        merged = reconcile(blocked_rules, {"riskLevel": "HIGH"})
        assert merged.recommendation_confidence.plan == blocked_rules.recommendation_confidence.plan


class TestUntrustedResult:
    def test_empty_defaults(self):
        other = UntrustedResult.from_payload(None)
        assert other.risk_level is None
        assert other.risk_score is None
        assert other.plan is None
        assert other.issues == []

    def test_coercion(self):
        other = UntrustedResult.from_payload({
            "riskScore": "250", "riskLevel": " high ", "issues": "single issue",
            "confidenceScore": "0.9", "unexpected": {"nested": True},
        })
        assert other.risk_score == 100
        assert other.risk_level == "HIGH"
        assert other.issues == ["single issue"]
        assert other.confidence_score == 0.9


class TestMergeInteractions:
    def test_higher_severity_wins(self):
        rules = [Interaction(pair="A+B", severity="MEDIUM", note="n")]
        external = [ExternalInteraction(pair="A+B", severity="HIGH", note="n")]
        merged = merge_interactions(("rules", rules), ("lookup", external))
        assert len(merged) == 1
        assert merged[0].pair == "A+B"
        assert merged[0].severity == "HIGH"
        assert merged[0].source == "lookup"

    def test_order_does_not_matter(self):
        rules = [Interaction(pair="A+B", severity="MEDIUM", note="n")]
        external = [ExternalInteraction(pair="a+b", severity="HIGH", note="N")]
        forward = merge_interactions(("rules", rules), ("lookup", external))
        backward = merge_interactions(("lookup", external), ("rules", rules))
        assert [(m.severity, m.source) for m in forward] == [(m.severity, m.source) for m in backward]

    def test_ties_keep_rules_entry(self):
        rules = [Interaction(pair="A+B", severity="HIGH", note="n")]
        external = [ExternalInteraction(pair="A+B", severity="HIGH", note="n")]
        for sources in ((("rules", rules), ("lookup", external)), (("lookup", external), ("rules", rules))):
            merged = merge_interactions(*sources)
            assert [m.source for m in merged] == ["rules"]

    def test_same_source_case_variants_resolve_the_same_way(self):
        upper = [ExternalInteraction(pair="A+B", severity="LOW", note="Note")]
        lower = [ExternalInteraction(pair="a+b", severity="LOW", note="note")]
        forward = merge_interactions(("lookup", upper), ("lookup", lower))
        backward = merge_interactions(("lookup", lower), ("lookup", upper))
        assert [(m.pair, m.note) for m in forward] == [("A+B", "Note")]
        assert [(m.pair, m.note) for m in backward] == [("A+B", "Note")]

    def test_idempotent(self):
        entries = run_safety_engine(PatientInput(medications="sildenafil, nitroglycerin, tamsulosin")).interactions
        merged = merge_interactions(("rules", entries), ("rules", entries))
        assert sorted(m.pair for m in merged) == sorted(i.pair for i in entries)

    def test_distinct_notes_are_kept_apart(self):
        external = [
            ExternalInteraction(pair="A+B", severity="LOW", note="first"),
            ExternalInteraction(pair="A+B", severity="LOW", note="second"),
        ]
        assert len(merge_interactions(("lookup", external))) == 2

    def test_external_severity_synonyms(self):
        assert ExternalInteraction(pair="A+B", severity="major").severity == "HIGH"
        assert ExternalInteraction(pair="A+B", severity="Moderate").severity == "MEDIUM"
        assert ExternalInteraction(pair="A+B", severity="unheard-of").severity == "LOW"

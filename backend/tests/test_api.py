import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from rxscore import db, main
from rxscore.config import Settings
from rxscore.schemas import ExternalInteraction
from rxscore.services.model_proxy import ModelProxyError

client = TestClient(main.app)

PATIENT = {
    "name": "Jane Roe",
    "age": 52,
    "bpSystolic": 128,
    "bpDiastolic": 82,
    "conditions": [],
    "medications": "Tamsulosin 0.4mg",
    "allergies": "",
}

MODEL_RESULT = {
    "riskScore": 70,
    "riskLevel": "HIGH",
    "issues": ["[HIGH] Model: suspected cardiac risk"],
    "plan": {"medication": "Sildenafil", "dosage": "25mg on demand", "duration": "30 Days"},
    "recommendationConfidence": {"plan": 0.66},
    "source": "openai",
}


@pytest.fixture
def history_db(tmp_path):
    db.configure(f"sqlite:///{tmp_path}/history.db")
    yield
    db.configure(None)


def _with_settings(**values):
    return patch.object(main, "settings", Settings(**values))


def _chunked(data, size=512):
    # a generator body is sent without Content-Length
    for i in range(0, len(data), size):
        yield data[i:i + size]


class TestHealth:
    def test_healthz(self):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_readyz_without_db(self):
        with patch.object(db, "SessionLocal", None):
            assert client.get("/readyz").json() == {"status": "ok", "db": "disabled"}

    def test_readyz_with_db(self, history_db):
        assert client.get("/readyz").json() == {"status": "ok", "db": "ok"}

    def test_config_reports_models(self):
        with _with_settings(gemini_api_key="g"):
            body = client.get("/api/config").json()
        assert body["defaultModel"] == "gemini"
        assert body["models"] == {"mock": True, "gemini": True, "openai": False}


class TestMockDiagnostics:
    def test_rules_result(self):
        resp = client.post("/api/diagnostics/mock", json=PATIENT)
        assert resp.status_code == 200
        body = resp.json()
        assert body["source"] == "rules"
        assert body["riskLevel"] == "LOW"
        assert body["plan"]["dosage"] == "2.5mg Daily"
        assert "dosingConcerns" in body
        assert "recommendationConfidence" in body

    def test_validation_failure(self):
        resp = client.post("/api/diagnostics/mock", json={**PATIENT, "name": "", "age": 130})
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "validation_failed"
        assert [i["field"] for i in body["issues"]] == ["name", "age"]

    def test_invalid_payload(self):
        resp = client.post("/api/diagnostics/mock", content=b"{not json",
                           headers={"Content-Type": "application/json"})
        assert resp.status_code == 400

        resp = client.post("/api/diagnostics/mock", json=[PATIENT])
        assert resp.status_code == 400

    def test_body_limit(self):
        with _with_settings(max_body_bytes=64):
            resp = client.post("/api/diagnostics/mock", json=PATIENT)
        assert resp.status_code == 413

    def test_body_limit_without_content_length(self):
        body = json.dumps({**PATIENT, "complaint": "x" * 5000}).encode()
        with _with_settings(max_body_bytes=64):
            resp = client.post("/api/diagnostics/mock", content=_chunked(body),
                               headers={"Content-Type": "application/json"})
        assert resp.status_code == 413
        assert resp.json() == {"error": "request body too large"}

    def test_chunked_body_under_limit(self):
        body = json.dumps(PATIENT).encode()
        resp = client.post("/api/diagnostics/mock", content=_chunked(body),
                           headers={"Content-Type": "application/json"})
        assert resp.status_code == 200
        assert resp.json()["source"] == "rules"


class TestModelDiagnostics:
    def test_missing_key(self):
        with _with_settings():
            resp = client.post("/api/diagnostics/openai", json=PATIENT)
        assert resp.status_code == 503
        assert resp.json() == {"error": "openai_unavailable", "reason": "missing_api_key"}

    def test_reconciled_with_rules(self):
        with _with_settings(openai_api_key="sk-test", openai_model="gpt-4o-mini"), \
                patch("rxscore.services.model_proxy.call_openai", return_value=MODEL_RESULT) as call:
            resp = client.post("/api/diagnostics/openai", json=PATIENT)
        assert resp.status_code == 200
        args = call.call_args[0]
        assert args[0] == "sk-test"
        assert args[1].name == "Jane Roe"
        assert args[2] == "gpt-4o-mini"

        body = resp.json()
        assert body["source"] == "openai+rules"
        assert body["riskLevel"] == "HIGH"
        assert body["riskScore"] == 70
        assert body["plan"]["medication"] == "Sildenafil"
        assert body["recommendationConfidence"]["plan"] == 0.66
        # findings stay with the rule engine
        assert [i["pair"] for i in body["interactions"]] == []
        assert "[HIGH] Model: suspected cardiac risk" in body["issues"]

    def test_proxy_failure_serves_rules(self):
        with _with_settings(gemini_api_key="g-key"), \
                patch("rxscore.services.model_proxy.call_gemini", side_effect=ModelProxyError("gemini status 500")):
            resp = client.post("/api/diagnostics/gemini", json=PATIENT)
        assert resp.status_code == 200
        assert resp.json()["source"] == "rules"


class TestInteractionsRoute:
    def test_merges_lookup(self):
        external = [
            ExternalInteraction(pair="Tadalafil + Nitroglycerin", severity="major", note="hypotension"),
        ]
        patient = {**PATIENT, "medications": "tadalafil, tamsulosin"}
        with _with_settings(interaction_api_url="http://lookup.test"), \
                patch("rxscore.main.lookup_interactions", return_value=external) as lookup:
            resp = client.post("/api/interactions", json=patient)
        lookup.assert_called_once_with("http://lookup.test", ["tadalafil", "tamsulosin"])
        body = resp.json()
        assert body["lookup"] is True
        assert [(i["pair"], i["source"]) for i in body["interactions"]] == [
            ("Alpha-blocker + PDE5i", "rules"),
            ("alphaBlockers+pde5i", "rules"),
            ("Tadalafil + Nitroglycerin", "lookup"),
        ]
        assert body["interactions"][2]["severity"] == "HIGH"

    def test_without_lookup(self):
        with _with_settings():
            resp = client.post("/api/interactions", json={"medications": "sildenafil"})
        assert resp.json() == {"interactions": [], "lookup": False}


class TestHistory:
    def test_disabled(self):
        with patch.object(db, "SessionLocal", None):
            assert client.get("/history").json() == []

    def test_saved_after_diagnostics(self, history_db):
        client.post("/api/diagnostics/mock", json=PATIENT)
        client.post("/api/diagnostics/mock", json={**PATIENT, "name": "John Smith"})

        rows = client.get("/history/jane").json()
        assert len(rows) == 1
        assert rows[0]["patient_name"] == "Jane Roe"
        assert rows[0]["risk_level"] == "LOW"
        assert rows[0]["source"] == "rules"
        assert rows[0]["result"]["riskLevel"] == "LOW"

        assert len(client.get("/history").json()) == 2
        assert len(client.get("/history", params={"limit": 1}).json()) == 1

    def test_limit_is_bounded(self, history_db):
        for limit in (-1, 0, 501):
            assert client.get("/history", params={"limit": limit}).status_code == 422
            assert client.get("/history/jane", params={"limit": limit}).status_code == 422

    def test_name_wildcards_are_literal(self, history_db):
        client.post("/api/diagnostics/mock", json=PATIENT)
        client.post("/api/diagnostics/mock", json={**PATIENT, "name": "Ann_100%"})

        assert client.get("/history/%25").json()[0]["patient_name"] == "Ann_100%"
        assert len(client.get("/history/%25").json()) == 1
        assert [r["patient_name"] for r in client.get("/history/_").json()] == ["Ann_100%"]
        assert client.get("/history/e_R").json() == []

# backend/rxscore/main.py
import logging
from typing import List

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from rxscore import db
from rxscore.config import available_models, default_model, load_settings
from rxscore.db import DiagnosticHistory
from rxscore.middleware import BodySizeLimit
from rxscore.schemas import DiagnosticResult, PatientInput, ValidationIssue
from rxscore.services import model_proxy
from rxscore.services.classifier import normalize
from rxscore.services.engine import run_safety_engine
from rxscore.services.interactions import lookup_interactions
from rxscore.services.reconcile import LOOKUP_SOURCE, RULES_SOURCE, merge_interactions, reconcile
from rxscore.services.validation import validate_patient

log = logging.getLogger("uvicorn.error")

settings = load_settings()
db.configure(settings.database_url if settings.enable_db else None)

app = FastAPI(title="Rx Safety Scorer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Authorization"],
    max_age=12 * 3600,
)
# Outermost: the limit is read per request so it follows the current settings
app.add_middleware(BodySizeLimit, max_bytes=lambda: settings.max_body_bytes)


async def _read_patient(request: Request) -> PatientInput:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="invalid payload")
    try:
        return PatientInput.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"invalid payload: {e}")


def _validation_failed(issues: List[ValidationIssue]) -> JSONResponse:
    return JSONResponse(status_code=422, content={
        "error": "validation_failed",
        "issues": [i.model_dump() for i in issues],
    })


def _save_history(patient: PatientInput, result: DiagnosticResult):
    if not db.is_enabled():
        return
    session = db.SessionLocal()
    try:
        record = DiagnosticHistory(
            patient_name=patient.name or "Unknown",
            patient_age=patient.age,
            medications=patient.medications,
            conditions=list(patient.conditions),
            risk_score=result.risk_score,
            risk_level=result.risk_level,
            medication=result.plan.medication,
            source=result.source,
            result=result.model_dump(mode="json", by_alias=True),
        )
        session.add(record)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log.error("Failed to save history: %s", e)
    finally:
        session.close()


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz():
    if not db.is_enabled():
        return {"status": "ok", "db": "disabled"}
    try:
        db.ping()
    except SQLAlchemyError as e:
        return JSONResponse(status_code=503, content={"status": "degraded", "db": f"unhealthy: {e}"})
    return {"status": "ok", "db": "ok"}


@app.get("/api/config")
def route_config():
    return {
        "defaultModel": default_model(settings),
        "models": available_models(settings),
        "llmProxy": True,
    }


@app.post("/api/diagnostics/mock", response_model=DiagnosticResult)
async def route_mock(request: Request):
    patient = await _read_patient(request)
    issues = validate_patient(patient)
    if issues:
        return _validation_failed(issues)

    result = run_safety_engine(patient)
    _save_history(patient, result)
    return result


async def _model_diagnostics(request: Request, provider: str):
    api_key = getattr(settings, f"{provider}_api_key")
    if not api_key:
        return JSONResponse(status_code=503, content={
            "error": f"{provider}_unavailable", "reason": "missing_api_key",
        })

    patient = await _read_patient(request)
    issues = validate_patient(patient)
    if issues:
        return _validation_failed(issues)

    rules = run_safety_engine(patient)
    call = model_proxy.call_gemini if provider == "gemini" else model_proxy.call_openai
    model = getattr(settings, f"{provider}_model")
    try:
        raw = await run_in_threadpool(call, api_key, patient, model)
    except model_proxy.ModelProxyError as e:
        # fall back to the deterministic result
        log.warning("%s proxy error, serving rules result: %s", provider, e)
        result = rules
    else:
        result = reconcile(rules, raw)

    _save_history(patient, result)
    return result


@app.post("/api/diagnostics/gemini", response_model=DiagnosticResult)
async def route_gemini(request: Request):
    return await _model_diagnostics(request, "gemini")


@app.post("/api/diagnostics/openai", response_model=DiagnosticResult)
async def route_openai(request: Request):
    return await _model_diagnostics(request, "openai")


@app.post("/api/interactions")
async def route_interactions(request: Request):
    """Engine interactions merged with the external interaction lookup, when configured."""
    patient = await _read_patient(request)
    rules = run_safety_engine(patient)

    external = await run_in_threadpool(
        lookup_interactions, settings.interaction_api_url, normalize(patient.medications),
    )
    merged = merge_interactions(
        (RULES_SOURCE, rules.interactions),
        (LOOKUP_SOURCE, external),
    )
    return {
        "interactions": [m.model_dump() for m in merged],
        "lookup": bool(settings.interaction_api_url),
    }


HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _history_row(r: DiagnosticHistory) -> dict:
    return {
        "id": r.id,
        "date": r.created_at.isoformat() if r.created_at else None,
        "patient_name": r.patient_name,
        "patient_age": r.patient_age,
        "medications": r.medications,
        "conditions": r.conditions,
        "risk_score": r.risk_score,
        "risk_level": r.risk_level,
        "medication": r.medication,
        "source": r.source,
        "result": r.result,
    }


@app.get("/history/{patient_name}")
def get_patient_history(patient_name: str, limit: int = Query(HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT)):
    """
    Returns recent analyses for a given patient_name (case-insensitive substring).
    """
    if not db.is_enabled():
        return []
    session = db.SessionLocal()
    try:
        q = (
            session.query(DiagnosticHistory)
            .filter(DiagnosticHistory.patient_name.ilike(f"%{_escape_like(patient_name)}%", escape="\\"))
            .order_by(DiagnosticHistory.created_at.desc(), DiagnosticHistory.id.desc())
            .limit(limit)
        )
        return [_history_row(r) for r in q]
    finally:
        session.close()


@app.get("/history")
def list_history(limit: int = Query(HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT)):
    """List recent analyses across all patients"""
    if not db.is_enabled():
        return []
    session = db.SessionLocal()
    try:
        q = (
            session.query(DiagnosticHistory)
            .order_by(DiagnosticHistory.created_at.desc(), DiagnosticHistory.id.desc())
            .limit(limit)
        )
        return [_history_row(r) for r in q]
    finally:
        session.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)

# backend/rxscore/services/model_proxy.py
import json
import logging
from typing import Any, Dict, Optional

import requests

from rxscore.schemas import PatientInput
from rxscore.services.extract import parse_medication_details

log = logging.getLogger("model_proxy")

MODEL_TIMEOUT = 20

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

SYSTEM_PROMPT = """
You are a clinical decision support engine for erectile dysfunction treatment.
Analyze the patient intake data and return a structured JSON treatment plan.

Patient intake fields: name, age, weight, height, bmi, blood pressure, lifestyle (smoking, alcohol, exercise),
conditions, medications (with parsed dose details), allergies, complaint.

Safety rules (strict):
1. [CONTRAINDICATION - HIGH] Nitrates (nitroglycerin, isosorbide) with PDE5 inhibitors (sildenafil, tadalafil,
   vardenafil, avanafil): profound hypotension. Never co-administer.
2. [CONTRAINDICATION - HIGH] Allergy to a PDE5 inhibitor or to nitrates: do not prescribe PDE5 inhibitors.
3. [INTERACTION - MEDIUM] Alpha-blockers (tamsulosin, terazosin, doxazosin, alfuzosin) with PDE5 inhibitors:
   separate dosing, start low.
4. [INTERACTION - MEDIUM] Strong CYP3A4 inhibitors (ketoconazole, itraconazole, ritonavir, cobicistat,
   clarithromycin) with PDE5 inhibitors: lowest dose only.
5. [DOSING - MEDIUM] Renal impairment: start at 2.5mg-5mg daily at most.
6. [DOSING - MEDIUM] Age over 65: start at the lowest dose.
7. [CONTRAINDICATION - MEDIUM] Pregnancy: avoid PDE5 inhibitors.
8. [CAUTION] Heart disease or uncontrolled hypertension: assess hemodynamic risk, prefer low dose or alternative.

Return JSON only (no markdown) with this shape:
{
  "riskScore": number (0-100),
  "riskLevel": "LOW" | "MEDIUM" | "HIGH",
  "issues": ["contraindications / interactions / dosing warnings"],
  "interactions": [{"pair": "Drug A + Drug B", "severity": "HIGH"|"MEDIUM"|"LOW", "note": "rationale"}],
  "contraindications": [{"conditionOrAllergy": "string", "severity": "HIGH"|"MEDIUM"|"LOW", "note": "rationale"}],
  "dosingConcerns": [{"factor": "string", "severity": "HIGH"|"MEDIUM"|"LOW", "recommendation": "guidance"}],
  "plan": {"medication": "Drug name" | "None", "dosage": "e.g. 2.5mg Daily", "duration": "e.g. 30 Days",
           "rationale": "concise reasoning"},
  "alternatives": [{"option": "string", "confidence": number (0.0-1.0)}],
  "confidenceScore": number (0.0-1.0),
  "recommendationConfidence": {"plan": number (0.0-1.0)},
  "source": "model"
}
"""


class ModelProxyError(Exception):
    """The generative model could not produce a usable payload."""


def cleanup_json_text(text: str) -> str:
    text = text.replace("```json", "").replace("```", "")
    return text.strip()


def prompt_payload(patient: PatientInput) -> str:
    data = patient.model_dump(by_alias=True)
    data["bmi"] = round(patient.effective_bmi, 1)
    data["medicationDetails"] = [
        d.model_dump() for d in parse_medication_details(patient.medication_details)
    ]
    return json.dumps(data)


def _decode(raw_text: Any) -> Dict[str, Any]:
    if not isinstance(raw_text, str):
        raise ModelProxyError("model returned no text content")
    try:
        out = json.loads(cleanup_json_text(raw_text))
    except ValueError as e:
        raise ModelProxyError(f"unmarshal model payload: {e}") from e
    if not isinstance(out, dict):
        raise ModelProxyError("model payload is not a JSON object")
    return out


def _post(url: str, body: Dict[str, Any], headers: Dict[str, str],
          params: Optional[Dict[str, str]], provider: str) -> Dict[str, Any]:
    log.debug("POST %s (%s)", url, provider)
    try:
        r = requests.post(url, json=body, headers=headers, params=params, timeout=MODEL_TIMEOUT)
    except requests.RequestException as e:
        raise ModelProxyError(f"call {provider}: {e}") from e
    if r.status_code < 200 or r.status_code >= 300:
        raise ModelProxyError(f"{provider} status {r.status_code}")
    try:
        return r.json()
    except ValueError as e:
        raise ModelProxyError(f"decode {provider} response: {e}") from e


def call_gemini(api_key: str, patient: PatientInput, model: str = "gemini-2.5-flash") -> Dict[str, Any]:
    body = {
        "contents": [{"parts": [{"text": f"Patient Data: {prompt_payload(patient)}"}]}],
        "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
    }
    parsed = _post(
        GEMINI_URL.format(model=model), body,
        headers={"Content-Type": "application/json"},
        params={"key": api_key},
        provider="gemini",
    )
    try:
        text = parsed["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise ModelProxyError("gemini response missing content")
    return _decode(text)


def call_openai(api_key: str, patient: PatientInput, model: str = "gpt-4o") -> Dict[str, Any]:
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt_payload(patient)},
        ],
        "response_format": {"type": "json_object"},
    }
    parsed = _post(
        OPENAI_URL, body,
        headers={"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"},
        params=None,
        provider="openai",
    )
    try:
        text = parsed["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise ModelProxyError("openai response missing choices")
    return _decode(text)

# backend/rxscore/schemas.py
import math
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Severity = Literal["HIGH", "MEDIUM", "LOW"]
RiskLevel = Literal["HIGH", "MEDIUM", "LOW"]

SEVERITY_RANK = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}

NO_MEDICATION = "None"
NOT_APPLICABLE = "N/A"


def _to_float(v: Any) -> float:
    if isinstance(v, bool) or v is None:
        return 0.0
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f) or math.isinf(f):
        return 0.0
    return f


def _to_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return ", ".join(str(x) for x in v if x is not None)
    return str(v)


class PatientInput(BaseModel):
    """Patient intake. Malformed numbers become 0, malformed text becomes empty."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = ""
    age: int = 0
    weight: float = 0.0
    height: float = 0.0
    bmi: float = 0.0
    bp_systolic: float = Field(0.0, alias="bpSystolic")
    bp_diastolic: float = Field(0.0, alias="bpDiastolic")
    smoking: str = ""
    alcohol: str = ""
    exercise: str = ""
    conditions: List[str] = []
    medications: str = ""
    medication_details: str = Field("", alias="medicationDetails")
    allergies: str = ""
    complaint: str = ""

    @field_validator("weight", "height", "bmi", "bp_systolic", "bp_diastolic", mode="before")
    @classmethod
    def _coerce_number(cls, v):
        return _to_float(v)

    @field_validator("age", mode="before")
    @classmethod
    def _coerce_age(cls, v):
        return int(_to_float(v))

    @field_validator(
        "name", "smoking", "alcohol", "exercise", "medications",
        "medication_details", "allergies", "complaint",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, v):
        return _to_text(v)

    @field_validator("conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, v):
        if isinstance(v, str):
            return [v] if v.strip() else []
        if not isinstance(v, (list, tuple)):
            return []
        return [str(c) for c in v if c is not None]

    @property
    def effective_bmi(self) -> float:
        """Provided BMI, else derived from weight and height when both are known."""
        if self.bmi > 0:
            return self.bmi
        if self.weight > 0 and self.height > 0:
            metres = self.height / 100.0
            return self.weight / (metres * metres)
        return 0.0


class MedicationDetail(BaseModel):
    drug: str
    strength: Optional[float] = None
    unit: Optional[str] = None
    frequency_per_day: Optional[int] = None


class Interaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    pair: str
    severity: Severity
    note: str


class Contraindication(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    condition_or_allergy: str = Field(alias="conditionOrAllergy")
    severity: Severity
    note: str


class DosingConcern(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor: str
    severity: Severity
    recommendation: str


class SourcedInteraction(Interaction):
    """An interaction tagged with the source that contributed it."""

    source: str


class Plan(BaseModel):
    medication: str = NO_MEDICATION
    dosage: str = NOT_APPLICABLE
    duration: str = NOT_APPLICABLE
    rationale: str = ""


class Alternative(BaseModel):
    option: str
    confidence: float


class RecommendationConfidence(BaseModel):
    plan: float


class DiagnosticResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    risk_score: int = Field(alias="riskScore")
    risk_level: RiskLevel = Field(alias="riskLevel")
    issues: List[str]
    interactions: List[Interaction] = []
    contraindications: List[Contraindication] = []
    dosing_concerns: List[DosingConcern] = Field(default_factory=list, alias="dosingConcerns")
    plan: Plan
    alternatives: List[Alternative] = []
    confidence_score: float = Field(alias="confidenceScore")
    recommendation_confidence: RecommendationConfidence = Field(alias="recommendationConfidence")
    source: str = "rules"


class UntrustedResult(BaseModel):
    """
    Result-shaped payload from a source we do not trust (model output).
    Every field is optional; anything malformed collapses to None / [] instead of raising.
    Finding lists are deliberately not modelled: they are never taken from this source.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    risk_score: Optional[int] = Field(None, alias="riskScore")
    risk_level: Optional[RiskLevel] = Field(None, alias="riskLevel")
    issues: List[str] = []
    plan: Optional[Plan] = None
    alternatives: Optional[List[Alternative]] = None
    confidence_score: Optional[float] = Field(None, alias="confidenceScore")
    plan_confidence: Optional[float] = Field(None, alias="recommendationConfidence")
    source: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "UntrustedResult":
        if isinstance(payload, UntrustedResult):
            return payload
        if isinstance(payload, DiagnosticResult):
            payload = payload.model_dump(by_alias=True)
        if not isinstance(payload, dict):
            return cls()
        return cls.model_validate(payload)

    @model_validator(mode="before")
    @classmethod
    def _only_mappings(cls, data):
        return data if isinstance(data, dict) else {}

    @field_validator("risk_score", mode="before")
    @classmethod
    def _coerce_score(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            f = float(v)
        except (TypeError, ValueError):
            return None
        if math.isnan(f) or math.isinf(f):
            return None
        return int(max(0.0, min(100.0, f)))

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_level(cls, v):
        if not isinstance(v, str):
            return None
        level = v.strip().upper()
        return level if level in SEVERITY_RANK else None

    @field_validator("issues", mode="before")
    @classmethod
    def _coerce_issues(cls, v):
        if isinstance(v, str):
            return [v] if v.strip() else []
        if not isinstance(v, (list, tuple)):
            return []
        return [i for i in v if isinstance(i, str) and i.strip()]

    @field_validator("plan", mode="before")
    @classmethod
    def _coerce_plan(cls, v):
        if not isinstance(v, dict):
            return None
        medication = v.get("medication")
        if not isinstance(medication, str) or not medication.strip():
            return None
        return Plan(
            medication=medication.strip(),
            dosage=_plain_or(v.get("dosage"), NOT_APPLICABLE),
            duration=_plain_or(v.get("duration"), NOT_APPLICABLE),
            rationale=_plain_or(v.get("rationale"), ""),
        )

    @field_validator("alternatives", mode="before")
    @classmethod
    def _coerce_alternatives(cls, v):
        if not isinstance(v, (list, tuple)):
            return None
        out = []
        for item in v:
            if isinstance(item, str) and item.strip():
                out.append(Alternative(option=item.strip(), confidence=DEFAULT_ALTERNATIVE_CONFIDENCE))
            elif isinstance(item, dict) and isinstance(item.get("option"), str):
                conf = _unit_interval(item.get("confidence"))
                out.append(Alternative(
                    option=item["option"],
                    confidence=DEFAULT_ALTERNATIVE_CONFIDENCE if conf is None else conf,
                ))
        return out or None

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _coerce_confidence(cls, v):
        return _unit_interval(v)

    @field_validator("plan_confidence", mode="before")
    @classmethod
    def _coerce_plan_confidence(cls, v):
        if isinstance(v, dict):
            v = v.get("plan")
        return _unit_interval(v)

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, v):
        if isinstance(v, str) and v.strip():
            return v.strip()
        return None


DEFAULT_ALTERNATIVE_CONFIDENCE = 0.5


def _plain_or(v: Any, default: str) -> str:
    if isinstance(v, (str, int, float)) and not isinstance(v, bool) and str(v).strip():
        return str(v).strip()
    return default


def _unit_interval(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return max(0.0, min(1.0, f))


class ExternalInteraction(BaseModel):
    """One finding from the external interaction lookup, severity normalised."""

    model_config = ConfigDict(extra="ignore")

    pair: str
    severity: Severity = "LOW"
    note: str = ""

    @field_validator("pair", "note", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _to_text(v).strip()

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, v):
        if not isinstance(v, str):
            return "LOW"
        return SEVERITY_SYNONYMS.get(v.strip().lower(), "LOW")


SEVERITY_SYNONYMS = {
    "high": "HIGH",
    "major": "HIGH",
    "severe": "HIGH",
    "contraindicated": "HIGH",
    "contra": "HIGH",
    "medium": "MEDIUM",
    "moderate": "MEDIUM",
    "low": "LOW",
    "minor": "LOW",
}


class ValidationIssue(BaseModel):
    field: str
    message: str

# backend/rxscore/services/findings.py
from dataclasses import dataclass
from typing import FrozenSet, Iterator, Tuple, Union

from rxscore.schemas import Contraindication, DosingConcern, Interaction, PatientInput
from rxscore.services.classifier import has_class, normalize
from rxscore.services.rule_table import CONTRAINDICATION, DOSING, INTERACTION, RULES

Finding = Union[Interaction, Contraindication, DosingConcern]

SEVERE_SYSTOLIC = 170
SEVERE_DIASTOLIC = 110
ELEVATED_SYSTOLIC = 150
ELEVATED_DIASTOLIC = 95
OBESE_BMI = 35
OVERWEIGHT_BMI = 30
SENIOR_AGE = 65

SEDENTARY_VALUES = ("none", "sedentary")


@dataclass(frozen=True)
class PatientProfile:
    """Normalised view of one intake, everything the checks need."""

    meds: Tuple[str, ...]
    allergies: Tuple[str, ...]
    conditions: FrozenSet[str]
    age: int
    bmi: float
    bp_systolic: float
    bp_diastolic: float
    smoking: str
    alcohol: str
    exercise: str

    def has_med_class(self, class_name: str) -> bool:
        return has_class(self.meds, class_name)

    def has_allergy_class(self, class_name: str) -> bool:
        return has_class(self.allergies, class_name)

    def has_condition(self, label: str) -> bool:
        return label in self.conditions

    @property
    def pde5i(self) -> bool:
        return self.has_med_class("pde5i")

    @property
    def nitrates(self) -> bool:
        return self.has_med_class("nitrates")

    @property
    def alpha_blocker(self) -> bool:
        return self.has_med_class("alphaBlockers")

    @property
    def cyp3a4(self) -> bool:
        return self.has_med_class("cyp3a4Inhibitors")

    @property
    def senior(self) -> bool:
        return self.age >= SENIOR_AGE

    @property
    def pregnant(self) -> bool:
        return self.has_condition("pregnant")

    @property
    def kidney_disease(self) -> bool:
        return self.has_condition("kidney disease")

    @property
    def liver_disease(self) -> bool:
        return self.has_condition("liver disease")

    @property
    def heart_disease(self) -> bool:
        return self.has_condition("heart disease")

    @property
    def hypertension(self) -> bool:
        return self.has_condition("hypertension")


@dataclass(frozen=True)
class FindingSet:
    interactions: Tuple[Interaction, ...] = ()
    contraindications: Tuple[Contraindication, ...] = ()
    dosing_concerns: Tuple[DosingConcern, ...] = ()

    def __iter__(self) -> Iterator[Finding]:
        yield from self.interactions
        yield from self.contraindications
        yield from self.dosing_concerns

    def __len__(self) -> int:
        return len(self.interactions) + len(self.contraindications) + len(self.dosing_concerns)

    @property
    def has_blocker(self) -> bool:
        """Any HIGH interaction or contraindication."""
        return any(f.severity == "HIGH" for f in self.interactions) or \
            any(f.severity == "HIGH" for f in self.contraindications)


def build_profile(patient: PatientInput) -> PatientProfile:
    return PatientProfile(
        meds=tuple(normalize(patient.medications)),
        allergies=tuple(normalize(patient.allergies)),
        conditions=frozenset(c.strip().lower() for c in patient.conditions),
        age=patient.age,
        bmi=patient.effective_bmi,
        bp_systolic=patient.bp_systolic,
        bp_diastolic=patient.bp_diastolic,
        smoking=patient.smoking.strip().lower(),
        alcohol=patient.alcohol.strip().lower(),
        exercise=patient.exercise.strip().lower(),
    )


def collect_findings(p: PatientProfile) -> FindingSet:
    """
    Run the class-pair checks, the rule table and the vital/lifestyle checks.
    Table rows and hard-coded checks overlap on purpose and are not deduplicated.
    """
    interactions = []
    contraindications = []
    dosing = []

    if p.pde5i and p.nitrates:
        interactions.append(Interaction(
            pair="Nitrates + PDE5i", severity="HIGH",
            note="Risk of profound hypotension; avoid co-administration.",
        ))
    if p.pde5i and p.alpha_blocker:
        interactions.append(Interaction(
            pair="Alpha-blocker + PDE5i", severity="MEDIUM",
            note="Additive hypotension; separate dosing and start low.",
        ))
    if p.pde5i and p.cyp3a4:
        interactions.append(Interaction(
            pair="Strong CYP3A4 inhibitor + PDE5i", severity="MEDIUM",
            note="Higher PDE5i levels; use lowest dose and monitor.",
        ))

    for rule in RULES:
        if rule.type == INTERACTION:
            if p.has_med_class(rule.class_a) and p.has_med_class(rule.class_b):
                interactions.append(Interaction(
                    pair=f"{rule.class_a}+{rule.class_b}",
                    severity=rule.severity,
                    note=rule.note,
                ))
        elif rule.type == CONTRAINDICATION:
            cond_match = bool(rule.condition) and p.has_condition(rule.condition)
            drug_match = not rule.requires_class or p.has_med_class(rule.requires_class)
            if cond_match and drug_match:
                contraindications.append(Contraindication(
                    condition_or_allergy=rule.condition,
                    severity=rule.severity,
                    note=rule.note,
                ))
        elif rule.type == DOSING:
            if rule.condition and p.has_condition(rule.condition):
                dosing.append(DosingConcern(
                    factor=rule.condition,
                    severity=rule.severity,
                    recommendation=rule.note,
                ))

    contraindications.extend(_contraindications(p))
    dosing.extend(_dosing_concerns(p))

    return FindingSet(
        interactions=tuple(interactions),
        contraindications=tuple(contraindications),
        dosing_concerns=tuple(dosing),
    )


def _contraindications(p: PatientProfile):
    if p.nitrates:
        yield Contraindication(
            condition_or_allergy="Nitrate therapy", severity="HIGH",
            note="Concurrent nitrate use contraindicates PDE5 inhibitors due to hypotension risk.",
        )
    if p.bp_systolic >= SEVERE_SYSTOLIC or p.bp_diastolic >= SEVERE_DIASTOLIC:
        yield Contraindication(
            condition_or_allergy="Severely elevated BP", severity="HIGH",
            note="Uncontrolled hypertension; PDE5 inhibitors contraindicated.",
        )
    elif p.bp_systolic >= ELEVATED_SYSTOLIC or p.bp_diastolic >= ELEVATED_DIASTOLIC:
        yield Contraindication(
            condition_or_allergy="Elevated BP", severity="MEDIUM",
            note="Elevated blood pressure; use lowest dose and monitor.",
        )
    if p.has_allergy_class("pde5i"):
        yield Contraindication(
            condition_or_allergy="PDE5 inhibitor allergy", severity="HIGH",
            note="Do not prescribe PDE5 inhibitors.",
        )
    if p.has_allergy_class("nitrates"):
        yield Contraindication(
            condition_or_allergy="Nitrate allergy", severity="HIGH",
            note="Avoid nitrates and PDE5 co-prescribing.",
        )
    if p.pregnant:
        yield Contraindication(
            condition_or_allergy="Pregnancy", severity="MEDIUM",
            note="Safety not established; avoid PDE5 inhibitors.",
        )
    if p.heart_disease:
        yield Contraindication(
            condition_or_allergy="Heart Disease", severity="MEDIUM",
            note="Assess hemodynamic reserve; prefer low dose or alternative.",
        )
    if p.hypertension:
        yield Contraindication(
            condition_or_allergy="Hypertension", severity="MEDIUM",
            note="Monitor BP; start low to avoid hypotension.",
        )


def _dosing_concerns(p: PatientProfile):
    if p.senior:
        yield DosingConcern(
            factor="Age >65", severity="MEDIUM",
            recommendation="Initiate at lowest dose; titrate cautiously.",
        )
    if p.kidney_disease:
        yield DosingConcern(
            factor="Renal impairment", severity="MEDIUM",
            recommendation="Max 2.5mg-5mg daily; monitor for hypotension.",
        )
    if p.liver_disease:
        yield DosingConcern(
            factor="Hepatic impairment", severity="MEDIUM",
            recommendation="Use lowest dose; consider avoiding if severe.",
        )
    if p.bmi >= OBESE_BMI:
        yield DosingConcern(
            factor="Obesity (BMI ≥35)", severity="MEDIUM",
            recommendation="Start lowest dose; monitor cardiovascular tolerance.",
        )
    elif p.bmi >= OVERWEIGHT_BMI:
        yield DosingConcern(
            factor="Overweight (BMI ≥30)", severity="LOW",
            recommendation="Start low; encourage weight management and monitoring.",
        )
    if p.smoking == "current":
        yield DosingConcern(
            factor="Smoking", severity="LOW",
            recommendation="Counsel cessation; monitor CV risk with therapy.",
        )
    if p.alcohol == "heavy":
        yield DosingConcern(
            factor="Heavy alcohol use", severity="MEDIUM",
            recommendation="Avoid concurrent dosing; monitor BP and sedation risk.",
        )
    if p.exercise in SEDENTARY_VALUES:
        yield DosingConcern(
            factor="Sedentary", severity="LOW",
            recommendation="Encourage activity; monitor cardiometabolic risk.",
        )

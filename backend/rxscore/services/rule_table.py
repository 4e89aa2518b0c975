# backend/rxscore/services/rule_table.py
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional

DRUG_CLASSES = MappingProxyType({
    "pde5i": ("sildenafil", "tadalafil", "vardenafil", "avanafil"),
    "nitrates": ("nitroglycerin", "isosorbide", "isosorbide dinitrate", "isosorbide mononitrate"),
    "alphaBlockers": ("tamsulosin", "doxazosin", "terazosin", "alfuzosin"),
    "cyp3a4Inhibitors": ("ketoconazole", "itraconazole", "ritonavir", "cobicistat", "clarithromycin"),
})

INTERACTION = "interaction"
CONTRAINDICATION = "contraindication"
DOSING = "dosing"


@dataclass(frozen=True)
class Rule:
    id: str
    type: str  # interaction | contraindication | dosing
    severity: str
    note: str
    class_a: Optional[str] = None
    class_b: Optional[str] = None
    condition: Optional[str] = None
    requires_class: Optional[str] = None


# Evaluated in order.
RULES = (
    Rule(
        id="nitrates+pde5i", type=INTERACTION, severity="HIGH",
        class_a="nitrates", class_b="pde5i",
        note="Risk of profound hypotension; avoid co-administration.",
    ),
    Rule(
        id="alpha+pde5i", type=INTERACTION, severity="MEDIUM",
        class_a="alphaBlockers", class_b="pde5i",
        note="Additive hypotension; separate dosing and start low.",
    ),
    Rule(
        id="cyp3a4+pde5i", type=INTERACTION, severity="MEDIUM",
        class_a="cyp3a4Inhibitors", class_b="pde5i",
        note="Higher PDE5i levels; use lowest dose and monitor.",
    ),
    Rule(
        id="pregnancy+pde5i", type=CONTRAINDICATION, severity="MEDIUM",
        condition="pregnant", requires_class="pde5i",
        note="Safety in pregnancy not established; avoid PDE5 inhibitors.",
    ),
    Rule(
        id="renal+pde5i", type=DOSING, severity="MEDIUM",
        condition="kidney disease",
        note="Max 2.5-5mg daily; monitor closely.",
    ),
)

SEVERITY_WEIGHT = MappingProxyType({
    "HIGH": 40,
    "MEDIUM": 20,
    "LOW": 10,
})

# Plan tiers
DEFAULT_MEDICATION = "Tadalafil"
STANDARD_DOSAGE = "5mg Daily"
STANDARD_DURATION = "90 Days"
CONSERVATIVE_DOSAGE = "2.5mg Daily"
CONSERVATIVE_DURATION = "30 Days"

ALTERNATIVES_BLOCKED = (
    ("Vacuum erection device", 0.65),
    ("Specialist referral", 0.70),
)
ALTERNATIVES_AVAILABLE = (
    ("Sildenafil 25mg on demand", 0.70),
    ("Vardenafil 10mg", 0.65),
    ("Behavioral therapy", 0.60),
)

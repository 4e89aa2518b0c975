# backend/rxscore/services/classifier.py
import re
from typing import Iterable, List

from rxscore.services.rule_table import DRUG_CLASSES

_SEPARATORS = re.compile(r"[,;]")


def normalize(text: str) -> List[str]:
    """
    Split a free-text medication/allergy list into lowercase tokens.
    "Tadalafil 5mg; Nitroglycerin," -> ["tadalafil 5mg", "nitroglycerin"]
    """
    if not text:
        return []
    tokens = []
    for part in _SEPARATORS.split(text.lower()):
        part = part.strip()
        if part:
            tokens.append(part)
    return tokens


def class_match(tokens: Iterable[str], members: Iterable[str]) -> bool:
    """True if any token contains any class member as a substring."""
    members = tuple(members)
    return any(drug in t for t in tokens for drug in members)


def has_class(tokens: Iterable[str], class_name: str) -> bool:
    members = DRUG_CLASSES.get(class_name)
    if not members:
        return False
    return class_match(tokens, members)


def is_pde5_inhibitor(medication: str) -> bool:
    return has_class(normalize(medication), "pde5i")

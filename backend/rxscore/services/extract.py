# backend/rxscore/services/extract.py
import re
from typing import List, Optional

from rxscore.schemas import MedicationDetail

# Common medical abbreviations for dosage frequency
FREQ_ABBREV_MAP = {
    "od": 1,   # once daily
    "qd": 1,
    "daily": 1,
    "bd": 2,   # twice daily
    "bid": 2,
    "tds": 3,  # three times daily
    "tid": 3,
    "qid": 4,  # four times daily
    "hs": 1,   # at bedtime (once daily)
    "prn": None,  # as needed, leave None for frequency
}

# "Tadalafil 5 mg OD", "Tamsulosin 0.4mg daily", "Ritonavir 100 mg 2x"
_DETAIL_PATTERN = re.compile(
    r"([A-Za-z][A-Za-z\-]*(?:\s[A-Za-z][A-Za-z\-]*)*)\s+(\d+(?:\.\d+)?)\s*(mg|g|mcg)\b\s*([A-Za-z0-9]+)?",
    re.IGNORECASE,
)


def clean_text(text: str) -> str:
    text = re.sub(r"[^a-zA-Z0-9\s\.\,\;\/\-]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def decode_frequency(freq_str: str) -> Optional[int]:
    freq_str = (freq_str or "").lower()
    if freq_str in FREQ_ABBREV_MAP:
        return FREQ_ABBREV_MAP[freq_str]
    if freq_str.endswith("x"):  # e.g., "3x"
        try:
            return int(freq_str[:-1])
        except ValueError:
            return None
    return None


def parse_medication_details(text: str) -> List[MedicationDetail]:
    """
    Parse free-text dose detail into structured lines.
    Segments that carry no recognisable strength are skipped.
    """
    if not text:
        return []
    details = []
    for segment in re.split(r"[;\n,]", text):
        segment = clean_text(segment)
        match = _DETAIL_PATTERN.search(segment)
        if not match:
            continue
        details.append(MedicationDetail(
            drug=match.group(1).strip(),
            strength=float(match.group(2)),
            unit=match.group(3).lower(),
            frequency_per_day=decode_frequency(match.group(4)),
        ))
    return details

# backend/rxscore/services/interactions.py
import logging
from typing import Any, List, Optional

import requests
from pydantic import ValidationError

from rxscore.schemas import ExternalInteraction

log = logging.getLogger("interactions")

LOOKUP_TIMEOUT = 5


def _entries(payload: Any) -> List[Any]:
    if isinstance(payload, dict):
        payload = payload.get("interactions", [])
    if not isinstance(payload, list):
        return []
    return payload


def parse_lookup_response(payload: Any) -> List[ExternalInteraction]:
    """Keep the well-formed entries of a lookup response, drop the rest."""
    results = []
    for raw in _entries(payload):
        if not isinstance(raw, dict):
            continue
        try:
            results.append(ExternalInteraction.model_validate(raw))
        except ValidationError as e:
            log.debug("Skipping malformed interaction entry %r: %s", raw, e)
    return [r for r in results if r.pair]


def lookup_interactions(url: Optional[str], medications: List[str],
                        session: Optional[requests.Session] = None) -> List[ExternalInteraction]:
    """
    Ask the external interaction service about a medication list.
    Returns [] when the lookup is not configured or fails in any way.
    """
    if not url or not medications:
        return []
    http = session or requests
    try:
        r = http.post(url, json={"medications": medications}, timeout=LOOKUP_TIMEOUT)
        r.raise_for_status()
        payload = r.json()
    except (requests.RequestException, ValueError) as e:
        log.warning("Interaction lookup failed: %s", e)
        return []
    return parse_lookup_response(payload)

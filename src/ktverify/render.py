"""
ktverify Outcome Rendering

Serializes check and listing outcomes for an API layer, either as JSON or
as plain text. Pure functions; no transport concerns.

JSON shapes:
    {"status": "ok"}
    {"status": "ok", "check": {"pass": false, "reason": "..."}}
    {"status": "ok", "check": {"pass": true, "checksum": "..."}}
    {"status": "ok", "principals": {"list": [...], "checksum": "..."}}
    {"status": "error", "error": "..."}

Text shapes end with an "ok" line on success:
    pass / fail,<reason> / one principal per line
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Union

from ktverify.core.types import CheckStatus, ListingResult, Principal

Outcome = Optional[Union[CheckStatus, ListingResult]]


def principal_to_dict(principal: Principal) -> Dict[str, str]:
    data = {"primary": principal.primary}
    if principal.instance:
        data["instance"] = principal.instance
    data["realm"] = principal.realm
    return data


def check_to_dict(status: CheckStatus) -> Dict[str, Any]:
    data: Dict[str, Any] = {"pass": status.passed}
    if status.reason:
        data["reason"] = status.reason
    if status.checksum:
        data["checksum"] = status.checksum
    return data


def listing_to_dict(listing: ListingResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if listing.principals:
        data["list"] = [principal_to_dict(p) for p in listing.principals]
    if listing.checksum:
        data["checksum"] = listing.checksum
    return data


def outcome_to_dict(outcome: Outcome) -> Dict[str, Any]:
    """Success envelope for an outcome (None for operations with no payload)."""
    data: Dict[str, Any] = {"status": "ok"}
    if isinstance(outcome, CheckStatus):
        data["check"] = check_to_dict(outcome)
    elif isinstance(outcome, ListingResult):
        data["principals"] = listing_to_dict(outcome)
    elif outcome is not None:
        raise TypeError(f"cannot render {type(outcome).__name__}")
    return data


def render_json(outcome: Outcome = None) -> str:
    return json.dumps(outcome_to_dict(outcome))


def render_error_json(message: str) -> str:
    return json.dumps({"status": "error", "error": message})


def render_text(outcome: Outcome = None) -> str:
    """Plain text rendering; always terminated by an "ok" line."""
    lines = []
    if isinstance(outcome, CheckStatus):
        lines.append("pass" if outcome.passed else f"fail,{outcome.reason}")
    elif isinstance(outcome, ListingResult):
        lines.extend(p.full() for p in outcome.principals)
    elif outcome is not None:
        raise TypeError(f"cannot render {type(outcome).__name__}")
    lines.append("ok")
    return "\n".join(lines)


def render_error_text(message: str) -> str:
    return f"error: {message}"

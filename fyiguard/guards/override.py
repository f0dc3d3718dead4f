"""Override detection.

Runs before every other check and has no switch, allow-list or bypass: the
later checks trust the context fields they receive, so a smuggled
privilege-escalation flag has to be caught here or not at all.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, List, Pattern, Tuple

from fyiguard.guards.types import (
    ActionTaken,
    GuardContext,
    GuardVerdict,
    ReasonCode,
    RiskLevel,
    Verdict,
    make_verdict,
)

OVERRIDE_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("ADMIN_KEY", re.compile(r"__admin__", re.IGNORECASE)),
    ("BYPASS_FLAG", re.compile(r"bypass['\"]?\s*[=:]\s*['\"]?true", re.IGNORECASE)),
    ("ROLE_OVERRIDE", re.compile(r"role['\"]?\s*[=:]\s*['\"]?superadmin", re.IGNORECASE)),
    ("GRANT_ALL", re.compile(r"grant_all", re.IGNORECASE)),
    ("FORCE_AUTH", re.compile(r"force_auth['\"]?\s*[=:]\s*['\"]?true", re.IGNORECASE)),
    (
        "PRIVILEGE_ESCALATION",
        re.compile(r"\belevate_privilege|admin_token|master_key\b", re.IGNORECASE),
    ),
)


def _serialize_payload(payload: Any) -> str:
    return json.dumps(dict(payload), separators=(",", ":"), ensure_ascii=False, default=str)


def collect_strings(ctx: GuardContext) -> List[str]:
    """Every textual surface of the context, in scan order."""
    strings: List[str] = []
    if ctx.text_inputs:
        strings.extend(ctx.text_inputs)
    if ctx.payload:
        strings.append(_serialize_payload(ctx.payload))
    if ctx.headers:
        for key, value in ctx.headers.items():
            strings.append(f"{key}={value}")
    return strings


def check_override_attempt(ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
    for text in collect_strings(ctx):
        for name, pattern in OVERRIDE_PATTERNS:
            if pattern.search(text):
                return make_verdict(
                    ctx,
                    Verdict.BLOCK,
                    ReasonCode.OVERRIDE_ATTEMPT,
                    f"Override attempt detected: {name} in input",
                    RiskLevel.CRITICAL,
                    ActionTaken.SESSION_TERMINATED,
                    now=now,
                )
    return None


__all__ = ["OVERRIDE_PATTERNS", "check_override_attempt", "collect_strings"]

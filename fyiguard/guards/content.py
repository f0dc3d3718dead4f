"""Content & input guard: malicious free-text signatures."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Pattern, Tuple

from fyiguard.guards.types import (
    ActionTaken,
    GuardContext,
    GuardVerdict,
    ReasonCode,
    RiskLevel,
    Verdict,
    make_verdict,
)

MALICIOUS_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    (
        "SQL_INJECTION",
        re.compile(
            r"('\s*(OR|AND)\s+\d+\s*=\s*\d+|;\s*(DROP|DELETE|UPDATE|INSERT|ALTER)\s"
            r"|UNION\s+SELECT|--\s*$)",
            re.IGNORECASE,
        ),
    ),
    (
        "XSS_INJECTION",
        re.compile(r"(<script[^>]*>|javascript\s*:|on(load|error|click|mouseover)\s*=)", re.IGNORECASE),
    ),
    (
        "PROMPT_INJECTION",
        re.compile(
            r"(ignore\s+(previous|prior|all)\s+instructions|disregard\s+(all\s+)?instructions"
            r"|you\s+are\s+now|new\s+system\s+prompt|forget\s+(everything|all))",
            re.IGNORECASE,
        ),
    ),
    (
        "ROLE_IMPERSONATION",
        re.compile(r"\b(superadmin|ADMIN_OVERRIDE|system\s*admin|root\s*access)\b", re.IGNORECASE),
    ),
)


def find_malicious_signature(text: str) -> str | None:
    for name, pattern in MALICIOUS_PATTERNS:
        if pattern.search(text):
            return name
    return None


def check_malicious_input(ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
    for text in ctx.text_inputs or ():
        name = find_malicious_signature(text)
        if name is not None:
            return make_verdict(
                ctx,
                Verdict.BLOCK,
                ReasonCode.MALICIOUS_INPUT_DETECTED,
                f"Malicious input detected: {name}",
                RiskLevel.HIGH,
                ActionTaken.BLOCKED,
                now=now,
            )
    return None


__all__ = ["MALICIOUS_PATTERNS", "check_malicious_input", "find_malicious_signature"]

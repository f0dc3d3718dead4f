"""Core value types shared by the guard checks and the verdict engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class Verdict(str, Enum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    ESCALATE = "ESCALATE"


class ReasonCode(str, Enum):
    OK = "OK"
    SEAT_LIMIT_REACHED = "SEAT_LIMIT_REACHED"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"
    DOMAIN_UNKNOWN = "DOMAIN_UNKNOWN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    MALICIOUS_INPUT_DETECTED = "MALICIOUS_INPUT_DETECTED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    SESSION_INVALID = "SESSION_INVALID"
    SUSPICIOUS_MULTI_LOGIN = "SUSPICIOUS_MULTI_LOGIN"
    OVERRIDE_ATTEMPT = "OVERRIDE_ATTEMPT"
    FREE_FOREVER_CONFIRMED = "FREE_FOREVER_CONFIRMED"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActionTaken(str, Enum):
    LOGGED = "logged"
    BLOCKED = "blocked"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    SESSION_TERMINATED = "session_terminated"


class UserRole(str, Enum):
    MEMBER = "member"
    ORG_ADMIN = "org_admin"
    SUPERADMIN = "superadmin"


class GuardAction(str, Enum):
    VIEW_OWN_PROFILE = "view_own_profile"
    VIEW_ORG_MEMBERS = "view_org_members"
    CHANGE_ORG_SETTINGS = "change_org_settings"
    CHANGE_DOMAIN_PLAN = "change_domain_plan"
    ADD_REMOVE_DOMAINS = "add_remove_domains"
    PROMOTE_TO_ORG_ADMIN = "promote_to_org_admin"
    DELETE_ANY_USER = "delete_any_user"
    GRANT_FREE_FOREVER = "grant_free_forever"


class Plan(str, Enum):
    FREE_TRIAL = "free_trial"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    FREE_FOREVER = "free_forever"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_domain(email: str) -> str:
    """Return the lower-cased part after the first ``@`` (empty if absent)."""
    parts = (email or "").split("@")
    if len(parts) < 2:
        return ""
    return parts[1].strip().lower()


def _freeze_mapping(value: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if value is None:
        return None
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class GuardContext:
    """Everything one evaluation is allowed to look at.

    Collections are copied into read-only containers on construction so a
    caller mutating its own dict or list cannot change an evaluation that is
    already in flight.
    """

    user_email: str
    user_role: UserRole = UserRole.MEMBER
    org_id: Optional[str] = None
    action: Optional[str] = None
    payload: Optional[Mapping[str, Any]] = None
    session_token: Optional[str] = None
    session_ip: Optional[str] = None
    text_inputs: Optional[Tuple[str, ...]] = None
    headers: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_role", UserRole(self.user_role))
        if isinstance(self.action, GuardAction):
            object.__setattr__(self, "action", self.action.value)
        object.__setattr__(self, "payload", _freeze_mapping(self.payload))
        object.__setattr__(self, "headers", _freeze_mapping(self.headers))
        if self.text_inputs is not None:
            inputs: Sequence[str] = self.text_inputs
            object.__setattr__(self, "text_inputs", tuple(str(t) for t in inputs))

    @property
    def domain(self) -> str:
        return extract_domain(self.user_email)


@dataclass(frozen=True)
class UserSnapshot:
    email: str
    domain: str
    role: str


@dataclass(frozen=True)
class GuardVerdict:
    verdict: Verdict
    reason: ReasonCode
    detail: str
    risk_level: RiskLevel
    action_taken: ActionTaken
    timestamp: datetime
    user: UserSnapshot

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "reason": self.reason.value,
            "detail": self.detail,
            "risk_level": self.risk_level.value,
            "action_taken": self.action_taken.value,
            "timestamp": self.timestamp.astimezone(timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "user": {
                "email": self.user.email,
                "domain": self.user.domain,
                "role": self.user.role,
            },
        }

    def public_dict(self, message: str) -> Dict[str, Any]:
        """Denial/review body safe for end users: ``detail`` is withheld."""
        full = self.to_dict()
        return {
            "verdict": full["verdict"],
            "reason": full["reason"],
            "message": message,
            "risk_level": full["risk_level"],
            "timestamp": full["timestamp"],
        }


def make_verdict(
    ctx: GuardContext,
    verdict: Verdict,
    reason: ReasonCode,
    detail: str,
    risk: RiskLevel,
    action_taken: ActionTaken,
    *,
    now: Optional[datetime] = None,
) -> GuardVerdict:
    return GuardVerdict(
        verdict=verdict,
        reason=reason,
        detail=detail,
        risk_level=risk,
        action_taken=action_taken,
        timestamp=now or utcnow(),
        user=UserSnapshot(
            email=ctx.user_email,
            domain=ctx.domain,
            role=ctx.user_role.value,
        ),
    )


__all__ = [
    "ActionTaken",
    "GuardAction",
    "GuardContext",
    "GuardVerdict",
    "Plan",
    "ReasonCode",
    "RiskLevel",
    "UserRole",
    "UserSnapshot",
    "Verdict",
    "extract_domain",
    "make_verdict",
    "utcnow",
]

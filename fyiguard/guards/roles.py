"""Role-based action guard and the role mapping for external auth records."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Mapping, Optional

from fyiguard.guards.types import (
    ActionTaken,
    GuardAction,
    GuardContext,
    GuardVerdict,
    ReasonCode,
    RiskLevel,
    UserRole,
    Verdict,
    make_verdict,
)

ROLE_RANK: Mapping[UserRole, int] = {
    UserRole.MEMBER: 0,
    UserRole.ORG_ADMIN: 1,
    UserRole.SUPERADMIN: 2,
}

ACTION_MIN_ROLE: Mapping[GuardAction, UserRole] = {
    GuardAction.VIEW_OWN_PROFILE: UserRole.MEMBER,
    GuardAction.VIEW_ORG_MEMBERS: UserRole.ORG_ADMIN,
    GuardAction.CHANGE_ORG_SETTINGS: UserRole.ORG_ADMIN,
    GuardAction.CHANGE_DOMAIN_PLAN: UserRole.SUPERADMIN,
    GuardAction.ADD_REMOVE_DOMAINS: UserRole.SUPERADMIN,
    GuardAction.PROMOTE_TO_ORG_ADMIN: UserRole.SUPERADMIN,
    GuardAction.DELETE_ANY_USER: UserRole.SUPERADMIN,
    GuardAction.GRANT_FREE_FOREVER: UserRole.SUPERADMIN,
}

# Role strings as they appear on upstream auth records.
_EXTERNAL_ROLE_MAP: Dict[str, UserRole] = {
    "member": UserRole.MEMBER,
    "org_admin": UserRole.ORG_ADMIN,
    "superadmin": UserRole.SUPERADMIN,
    "MEMBER": UserRole.MEMBER,
    "ADMIN": UserRole.ORG_ADMIN,
}


def to_user_role(raw: Optional[str]) -> UserRole:
    """Map an external role string onto ``UserRole``.

    Anything not listed maps to ``member``, so an unrecognized string can
    never gain elevated access.
    """
    return _EXTERNAL_ROLE_MAP.get((raw or "").strip(), UserRole.MEMBER)


def required_role(action: Optional[str]) -> Optional[UserRole]:
    if not action:
        return None
    try:
        return ACTION_MIN_ROLE.get(GuardAction(action))
    except ValueError:
        return None


def has_role(user_role: UserRole, needed: UserRole) -> bool:
    return ROLE_RANK[user_role] >= ROLE_RANK[needed]


def check_permission(ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
    needed = required_role(ctx.action)
    if needed is None:
        # unguarded or unknown action: later checks decide
        return None
    if has_role(ctx.user_role, needed):
        return None
    return make_verdict(
        ctx,
        Verdict.BLOCK,
        ReasonCode.INSUFFICIENT_PERMISSIONS,
        f'Action "{ctx.action}" requires role "{needed.value}", '
        f'user has "{ctx.user_role.value}"',
        RiskLevel.MEDIUM,
        ActionTaken.BLOCKED,
        now=now,
    )


__all__ = [
    "ACTION_MIN_ROLE",
    "ROLE_RANK",
    "check_permission",
    "has_role",
    "required_role",
    "to_user_role",
]

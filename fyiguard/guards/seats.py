"""Seat limit enforcement."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Mapping, Optional

from fyiguard.guards.types import (
    ActionTaken,
    GuardContext,
    GuardVerdict,
    Plan,
    ReasonCode,
    RiskLevel,
    Verdict,
    make_verdict,
)
from fyiguard.services.directory import DirectoryStore

PLAN_SEAT_LIMITS: Mapping[str, float] = {
    Plan.FREE_TRIAL.value: 5,
    Plan.PRO.value: 25,
    Plan.ENTERPRISE.value: math.inf,
    Plan.FREE_FOREVER.value: math.inf,
}
DEFAULT_SEAT_CAP = 5


def seat_cap(plan: Optional[str]) -> float:
    return PLAN_SEAT_LIMITS.get(plan or Plan.FREE_TRIAL.value, DEFAULT_SEAT_CAP)


def _fmt_cap(cap: float) -> str:
    return "unlimited" if math.isinf(cap) else str(int(cap))


class SeatLimitCheck:
    name = "seat_limit"

    def __init__(self, directory: DirectoryStore) -> None:
        self.directory = directory

    async def __call__(self, ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
        if not ctx.org_id:
            return None
        org = await self.directory.get_organization(ctx.org_id)
        if org is None:
            return None

        record = org.find_domain(ctx.domain)
        if record is not None and record.is_free_forever:
            return None

        plan = org.plan or Plan.FREE_TRIAL.value
        cap = seat_cap(plan)
        if org.member_count < cap:
            return None
        return make_verdict(
            ctx,
            Verdict.BLOCK,
            ReasonCode.SEAT_LIMIT_REACHED,
            f"Org has {org.member_count}/{_fmt_cap(cap)} seats (plan: {plan}). "
            "No seats available.",
            RiskLevel.LOW,
            ActionTaken.BLOCKED,
            now=now,
        )


__all__ = ["DEFAULT_SEAT_CAP", "PLAN_SEAT_LIMITS", "SeatLimitCheck", "seat_cap"]

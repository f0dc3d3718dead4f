from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from fyiguard.guards.seats import SeatLimitCheck, seat_cap
from fyiguard.guards.types import GuardContext, ReasonCode, RiskLevel, Verdict
from fyiguard.services.directory import InMemoryDirectory, OrgDomain, Organization

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "plan, cap",
    [("free_trial", 5), ("pro", 25), ("enterprise", math.inf), ("free_forever", math.inf), (None, 5), ("mystery", 5)],
)
def test_seat_caps(plan, cap):
    assert seat_cap(plan) == cap


def _check(**org_kw) -> SeatLimitCheck:
    d = InMemoryDirectory()
    org_kw.setdefault("id", "org-1")
    d.add_organization(Organization(**org_kw))
    return SeatLimitCheck(d)


async def test_full_trial_org_blocks():
    check = _check(plan="free_trial", member_count=5)
    v = await check(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.BLOCK
    assert v.reason is ReasonCode.SEAT_LIMIT_REACHED
    assert v.risk_level is RiskLevel.LOW
    assert v.detail == "Org has 5/5 seats (plan: free_trial). No seats available."


async def test_below_cap_abstains():
    check = _check(plan="pro", member_count=24)
    assert await check(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW) is None


async def test_enterprise_is_unlimited():
    check = _check(plan="enterprise", member_count=10_000)
    assert await check(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW) is None


async def test_missing_plan_defaults_to_trial():
    check = _check(plan=None, member_count=7)
    v = await check(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW)
    assert v is not None and v.reason is ReasonCode.SEAT_LIMIT_REACHED


async def test_free_forever_domain_is_exempt():
    check = _check(
        plan="free_trial",
        member_count=50,
        domains=(OrgDomain("acme.com", plan="free_forever"),),
    )
    assert await check(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW) is None


async def test_no_org_abstains():
    check = _check(member_count=99)
    assert await check(GuardContext(user_email="a@acme.com"), now=NOW) is None

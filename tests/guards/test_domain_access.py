from __future__ import annotations

from datetime import datetime, timezone

from fyiguard.guards.domain import DomainAccessCheck
from fyiguard.guards.types import ActionTaken, GuardContext, ReasonCode, RiskLevel, Verdict
from fyiguard.services.directory import InMemoryDirectory, OrgDomain, Organization

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _directory(**org_kw) -> InMemoryDirectory:
    d = InMemoryDirectory()
    org_kw.setdefault("id", "org-1")
    d.add_organization(Organization(**org_kw))
    return d


async def test_no_org_abstains():
    check = DomainAccessCheck(InMemoryDirectory())
    assert await check(GuardContext(user_email="a@x.com"), now=NOW) is None
    assert await check(GuardContext(user_email="a@x.com", org_id="missing"), now=NOW) is None


async def test_restricted_org_blocks_unknown_domain():
    d = _directory(restrict_same_domain=True, domains=(OrgDomain("acme.com"),))
    v = await DomainAccessCheck(d)(GuardContext(user_email="eve@evil.io", org_id="org-1"), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.BLOCK
    assert v.reason is ReasonCode.DOMAIN_MISMATCH
    assert v.risk_level is RiskLevel.MEDIUM
    assert v.action_taken is ActionTaken.BLOCKED
    assert "evil.io" in v.detail


async def test_open_org_escalates_unknown_domain():
    d = _directory(domains=(OrgDomain("acme.com"),))
    v = await DomainAccessCheck(d)(GuardContext(user_email="eve@evil.io", org_id="org-1"), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.ESCALATE
    assert v.reason is ReasonCode.DOMAIN_UNKNOWN
    assert v.action_taken is ActionTaken.FLAGGED_FOR_REVIEW


async def test_domain_match_is_case_insensitive():
    d = _directory(restrict_same_domain=True, domains=(OrgDomain("Acme.COM"),))
    ctx = GuardContext(user_email="Alice@ACME.com", org_id="org-1")
    assert await DomainAccessCheck(d)(ctx, now=NOW) is None


async def test_free_forever_domain_allows():
    d = _directory(domains=(OrgDomain("acme.com", plan="free_forever"),))
    v = await DomainAccessCheck(d)(GuardContext(user_email="a@acme.com", org_id="org-1"), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.ALLOW
    assert v.reason is ReasonCode.FREE_FOREVER_CONFIRMED
    assert v.risk_level is RiskLevel.LOW
    assert v.action_taken is ActionTaken.LOGGED


async def test_org_without_registered_domains_abstains():
    d = _directory(restrict_same_domain=True, domains=())
    ctx = GuardContext(user_email="a@anything.org", org_id="org-1")
    assert await DomainAccessCheck(d)(ctx, now=NOW) is None

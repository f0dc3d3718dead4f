"""Domain access control."""

from __future__ import annotations

from datetime import datetime

from fyiguard.guards.types import (
    ActionTaken,
    GuardContext,
    GuardVerdict,
    ReasonCode,
    RiskLevel,
    Verdict,
    make_verdict,
)
from fyiguard.services.directory import DirectoryStore


class DomainAccessCheck:
    """Restrict org access by the caller's email domain.

    Unregistered domains are blocked when the org restricts to its own
    domains and queued for review otherwise. A registered domain carrying a
    ``free_forever`` plan is allowed outright, ending the evaluation.
    """

    name = "domain_access"

    def __init__(self, directory: DirectoryStore) -> None:
        self.directory = directory

    async def __call__(self, ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
        if not ctx.org_id:
            return None
        org = await self.directory.get_organization(ctx.org_id)
        if org is None:
            return None

        domain = ctx.domain
        record = org.find_domain(domain)

        if record is None and org.domains:
            if org.restrict_same_domain:
                return make_verdict(
                    ctx,
                    Verdict.BLOCK,
                    ReasonCode.DOMAIN_MISMATCH,
                    f'Email domain "{domain}" does not match org registered domains',
                    RiskLevel.MEDIUM,
                    ActionTaken.BLOCKED,
                    now=now,
                )
            return make_verdict(
                ctx,
                Verdict.ESCALATE,
                ReasonCode.DOMAIN_UNKNOWN,
                f'Domain "{domain}" is not registered in the system',
                RiskLevel.MEDIUM,
                ActionTaken.FLAGGED_FOR_REVIEW,
                now=now,
            )

        if record is not None and record.is_free_forever:
            return make_verdict(
                ctx,
                Verdict.ALLOW,
                ReasonCode.FREE_FOREVER_CONFIRMED,
                f'Domain "{domain}" has admin-granted free_forever access',
                RiskLevel.LOW,
                ActionTaken.LOGGED,
                now=now,
            )
        return None


__all__ = ["DomainAccessCheck"]

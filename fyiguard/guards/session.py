"""Session integrity: token validity, ownership, expiry and sharing signals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

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


@dataclass(frozen=True)
class SessionPolicy:
    default_ttl_seconds: int = 3600
    multi_login_window_seconds: int = 600
    multi_login_ip_threshold: int = 3


def ip_class(ip: Optional[str]) -> str:
    """First dot-delimited octet, used as a coarse origin signal."""
    return (ip or "").strip().split(".")[0]


class SessionIntegrityCheck:
    name = "session_integrity"

    def __init__(self, directory: DirectoryStore, policy: Optional[SessionPolicy] = None) -> None:
        self.directory = directory
        self.policy = policy or SessionPolicy()

    async def __call__(self, ctx: GuardContext, *, now: datetime) -> GuardVerdict | None:
        if not ctx.session_token:
            return None

        session = await self.directory.get_session(ctx.session_token)
        if session is None:
            return make_verdict(
                ctx,
                Verdict.BLOCK,
                ReasonCode.SESSION_INVALID,
                "Session token does not match any stored session",
                RiskLevel.HIGH,
                ActionTaken.SESSION_TERMINATED,
                now=now,
            )

        if session.owner_email != ctx.user_email:
            return make_verdict(
                ctx,
                Verdict.BLOCK,
                ReasonCode.SESSION_INVALID,
                "Session token does not match claimed user identity",
                RiskLevel.CRITICAL,
                ActionTaken.SESSION_TERMINATED,
                now=now,
            )

        ttl = session.ttl_seconds if session.ttl_seconds is not None else self.policy.default_ttl_seconds
        created_at = session.created_at
        if (now - created_at).total_seconds() > ttl:
            return make_verdict(
                ctx,
                Verdict.BLOCK,
                ReasonCode.SESSION_EXPIRED,
                f"Session created at {created_at.isoformat()} exceeds TTL of {ttl}s",
                RiskLevel.MEDIUM,
                ActionTaken.SESSION_TERMINATED,
                now=now,
            )

        if ctx.session_ip and session.ip:
            stored_class = ip_class(session.ip)
            current_class = ip_class(ctx.session_ip)
            if stored_class != current_class:
                return make_verdict(
                    ctx,
                    Verdict.ESCALATE,
                    ReasonCode.SESSION_INVALID,
                    f"Session created from IP class {stored_class}.x, "
                    f"current request from {current_class}.x",
                    RiskLevel.HIGH,
                    ActionTaken.FLAGGED_FOR_REVIEW,
                    now=now,
                )

        since = now - timedelta(seconds=self.policy.multi_login_window_seconds)
        unique_ips = await self.directory.count_recent_session_ips(ctx.user_email, since)
        if unique_ips >= self.policy.multi_login_ip_threshold:
            minutes = self.policy.multi_login_window_seconds // 60
            return make_verdict(
                ctx,
                Verdict.ESCALATE,
                ReasonCode.SUSPICIOUS_MULTI_LOGIN,
                f"{unique_ips} unique IPs detected for {ctx.user_email} "
                f"in last {minutes} minutes",
                RiskLevel.HIGH,
                ActionTaken.FLAGGED_FOR_REVIEW,
                now=now,
            )
        return None


__all__ = ["SessionIntegrityCheck", "SessionPolicy", "ip_class"]

"""Directory store: read-only organization and session lookups.

The engine reads organizations and sessions through ``DirectoryStore`` only.
Sessions are always read from the store, never from a per-process cache.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Dict, Optional, Protocol, Tuple, TypeVar

from fyiguard.guards.base import DirectoryUnavailable
from fyiguard.guards.types import Plan
from fyiguard.observability.metrics import inc_directory_failure

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OrgDomain:
    domain: str
    plan: Optional[str] = None

    @property
    def is_free_forever(self) -> bool:
        return self.plan == Plan.FREE_FOREVER.value


@dataclass(frozen=True)
class Organization:
    id: str
    plan: Optional[str] = Plan.FREE_TRIAL.value
    restrict_same_domain: bool = False
    domains: Tuple[OrgDomain, ...] = ()
    member_count: int = 0

    def find_domain(self, domain: str) -> Optional[OrgDomain]:
        wanted = (domain or "").lower()
        for record in self.domains:
            if record.domain.lower() == wanted:
                return record
        return None


@dataclass(frozen=True)
class SessionRecord:
    token: str
    owner_email: str
    ip: Optional[str]
    created_at: datetime
    ttl_seconds: Optional[int] = None

    def __post_init__(self) -> None:
        # stored as UTC; SQLite hands them back naive
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))


class DirectoryStore(Protocol):
    async def get_organization(self, org_id: str) -> Optional[Organization]: ...

    async def get_session(self, token: str) -> Optional[SessionRecord]: ...

    async def count_recent_session_ips(self, email: str, since: datetime) -> int: ...


@dataclass
class InMemoryDirectory:
    """Dict-backed store for dev mode and tests."""

    organizations: Dict[str, Organization] = field(default_factory=dict)
    sessions: Dict[str, SessionRecord] = field(default_factory=dict)

    def add_organization(self, org: Organization) -> Organization:
        self.organizations[org.id] = org
        return org

    def add_session(self, session: SessionRecord) -> SessionRecord:
        self.sessions[session.token] = session
        return session

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        return self.organizations.get(org_id)

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        return self.sessions.get(token)

    async def count_recent_session_ips(self, email: str, since: datetime) -> int:
        ips = {
            s.ip
            for s in self.sessions.values()
            if s.owner_email == email and s.created_at >= since and s.ip
        }
        return len(ips)


class TimeboxedDirectory:
    """Wrap a store so every lookup carries a timeout.

    Timeouts and store errors surface as ``DirectoryUnavailable``; the caller
    decides the fallback posture. Cancellation passes through untouched.
    """

    def __init__(self, inner: DirectoryStore, *, timeout_s: float) -> None:
        self.inner = inner
        self.timeout_s = timeout_s

    async def _call(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            inc_directory_failure(operation)
            log.error("directory lookup timed out", extra={"operation": operation})
            raise DirectoryUnavailable(
                operation, f"{operation} exceeded {self.timeout_s:.3f}s"
            ) from exc
        except DirectoryUnavailable:
            raise
        except Exception as exc:
            inc_directory_failure(operation)
            log.error(
                "directory lookup failed",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise DirectoryUnavailable(operation, f"{operation} failed: {exc}") from exc

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        return await self._call("get_organization", self.inner.get_organization(org_id))

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        return await self._call("get_session", self.inner.get_session(token))

    async def count_recent_session_ips(self, email: str, since: datetime) -> int:
        return await self._call(
            "count_recent_session_ips", self.inner.count_recent_session_ips(email, since)
        )


__all__ = [
    "DirectoryStore",
    "InMemoryDirectory",
    "OrgDomain",
    "Organization",
    "SessionRecord",
    "TimeboxedDirectory",
]

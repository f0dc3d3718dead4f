from __future__ import annotations

import asyncio
import os
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import create_engine, func, select

from fyiguard.models.tables import metadata, org_domains, org_members, organizations, sessions
from fyiguard.services.directory import OrgDomain, Organization, SessionRecord

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def create_sql_engine(dsn: str, *, autocreate: bool = True) -> "Engine":
    """Create an engine, making the SQLite directory on first use if needed."""
    if dsn.startswith("sqlite:///"):
        path = dsn.replace("sqlite:///", "", 1)
        dir_ = os.path.dirname(path or ".")
        if dir_:
            os.makedirs(dir_, exist_ok=True)

    eng = create_engine(dsn, future=True, pool_pre_ping=True)
    if autocreate:
        metadata.create_all(eng)
    return eng


class SqlDirectory:
    """Directory store over the relational tables.

    Statements are synchronous and run in a worker thread so the event loop
    keeps serving other evaluations while the database answers.
    """

    def __init__(self, engine: "Engine") -> None:
        self.engine = engine

    def _load_organization(self, org_id: str) -> Optional[Organization]:
        with self.engine.connect() as cx:
            row = cx.execute(
                select(organizations).where(organizations.c.id == org_id)
            ).mappings().first()
            if row is None:
                return None
            domain_rows = cx.execute(
                select(org_domains.c.domain, org_domains.c.plan).where(
                    org_domains.c.org_id == org_id
                )
            ).mappings()
            domains = tuple(OrgDomain(domain=d["domain"], plan=d["plan"]) for d in domain_rows)
            member_count = cx.execute(
                select(func.count())
                .select_from(org_members)
                .where(org_members.c.org_id == org_id)
            ).scalar_one()
        return Organization(
            id=str(row["id"]),
            plan=row["plan"],
            restrict_same_domain=bool(row["restrict_same_domain"]),
            domains=domains,
            member_count=int(member_count),
        )

    def _load_session(self, token: str) -> Optional[SessionRecord]:
        with self.engine.connect() as cx:
            row = cx.execute(
                select(sessions).where(sessions.c.token == token)
            ).mappings().first()
        if row is None:
            return None
        return SessionRecord(
            token=row["token"],
            owner_email=row["user_email"],
            ip=row["ip_address"],
            created_at=row["created_at"],
            ttl_seconds=row["ttl_seconds"],
        )

    def _count_recent_ips(self, email: str, since: datetime) -> int:
        stmt = (
            select(func.count(func.distinct(sessions.c.ip_address)))
            .where(sessions.c.user_email == email)
            .where(sessions.c.created_at >= since)
            .where(sessions.c.ip_address.is_not(None))
        )
        with self.engine.connect() as cx:
            return int(cx.execute(stmt).scalar_one())

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        return await asyncio.to_thread(self._load_organization, org_id)

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        return await asyncio.to_thread(self._load_session, token)

    async def count_recent_session_ips(self, email: str, since: datetime) -> int:
        return await asyncio.to_thread(self._count_recent_ips, email, since)


__all__ = ["SqlDirectory", "create_sql_engine"]

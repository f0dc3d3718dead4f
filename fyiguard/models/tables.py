from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

organizations = Table(
    "organizations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(256), nullable=True),
    Column("plan", String(32), nullable=True),
    Column("restrict_same_domain", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=True),
)

org_domains = Table(
    "org_domains",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("org_id", String(64), ForeignKey("organizations.id"), nullable=False, index=True),
    Column("domain", String(253), nullable=False, index=True),
    Column("plan", String(32), nullable=True),
)

org_members = Table(
    "org_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("org_id", String(64), ForeignKey("organizations.id"), nullable=False, index=True),
    Column("user_email", String(320), nullable=False),
    Column("role", String(32), nullable=True),
)

sessions = Table(
    "sessions",
    metadata,
    Column("token", String(256), primary_key=True),
    Column("user_email", String(320), nullable=False),
    Column("ip_address", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("ttl_seconds", Integer, nullable=True),
)

Index("ix_sessions_email_created", sessions.c.user_email, sessions.c.created_at.desc())

# Append-only; written by the audit sink, never updated by the engine.
guard_logs = Table(
    "guard_logs",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("verdict", String(16), nullable=False, index=True),
    Column("reason", String(64), nullable=False),
    Column("detail", Text, nullable=True),
    Column("risk_level", String(16), nullable=False),
    Column("action_taken", String(32), nullable=False),
    Column("user_email", String(320), nullable=False, index=True),
    Column("user_role", String(32), nullable=False),
    Column("org_id", String(64), nullable=True, index=True),
    Column("action", String(64), nullable=True),
    Column("ip_address", String(64), nullable=True),
    Column("payload", Text, nullable=True),  # JSON-encoded
)


__all__ = [
    "guard_logs",
    "metadata",
    "org_domains",
    "org_members",
    "organizations",
    "sessions",
]

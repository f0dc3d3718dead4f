from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fyiguard.guards.session import SessionIntegrityCheck, SessionPolicy, ip_class
from fyiguard.guards.types import ActionTaken, GuardContext, ReasonCode, RiskLevel, Verdict
from fyiguard.services.directory import InMemoryDirectory, SessionRecord

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
EMAIL = "alice@acme.com"


def _directory(*sessions: SessionRecord) -> InMemoryDirectory:
    d = InMemoryDirectory()
    for s in sessions:
        d.add_session(s)
    return d


def _session(token="tok", email=EMAIL, ip="10.0.0.1", age_min=5.0, ttl=None) -> SessionRecord:
    return SessionRecord(
        token=token,
        owner_email=email,
        ip=ip,
        created_at=NOW - timedelta(minutes=age_min),
        ttl_seconds=ttl,
    )


def _ctx(token="tok", ip="10.0.0.1", email=EMAIL) -> GuardContext:
    return GuardContext(user_email=email, session_token=token, session_ip=ip)


def test_ip_class():
    assert ip_class("192.168.1.5") == "192"
    assert ip_class(None) == ""


async def test_no_token_abstains():
    check = SessionIntegrityCheck(_directory())
    assert await check(GuardContext(user_email=EMAIL), now=NOW) is None


async def test_unknown_token_blocks():
    v = await SessionIntegrityCheck(_directory())(_ctx(), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.BLOCK
    assert v.reason is ReasonCode.SESSION_INVALID
    assert v.risk_level is RiskLevel.HIGH
    assert v.action_taken is ActionTaken.SESSION_TERMINATED


async def test_foreign_token_is_critical():
    d = _directory(_session(email="mallory@acme.com"))
    v = await SessionIntegrityCheck(d)(_ctx(), now=NOW)
    assert v is not None
    assert v.reason is ReasonCode.SESSION_INVALID
    assert v.risk_level is RiskLevel.CRITICAL


async def test_expired_by_default_ttl():
    d = _directory(_session(age_min=61))
    v = await SessionIntegrityCheck(d)(_ctx(), now=NOW)
    assert v is not None
    assert v.reason is ReasonCode.SESSION_EXPIRED
    assert v.risk_level is RiskLevel.MEDIUM


async def test_record_ttl_overrides_default():
    d = _directory(_session(age_min=10, ttl=300))
    v = await SessionIntegrityCheck(d)(_ctx(), now=NOW)
    assert v is not None and v.reason is ReasonCode.SESSION_EXPIRED


async def test_naive_timestamps_are_treated_as_utc():
    naive = SessionRecord(
        token="tok", owner_email=EMAIL, ip="10.0.0.1", created_at=(NOW - timedelta(minutes=5)).replace(tzinfo=None)
    )
    assert await SessionIntegrityCheck(_directory(naive))(_ctx(), now=NOW) is None


async def test_ip_class_change_escalates():
    d = _directory(_session(ip="10.1.2.3"))
    v = await SessionIntegrityCheck(d)(_ctx(ip="203.0.113.9"), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.ESCALATE
    assert v.reason is ReasonCode.SESSION_INVALID
    assert v.action_taken is ActionTaken.FLAGGED_FOR_REVIEW
    assert "10.x" in v.detail and "203.x" in v.detail


async def test_same_ip_class_passes():
    d = _directory(_session(ip="10.1.2.3"))
    assert await SessionIntegrityCheck(d)(_ctx(ip="10.200.0.1"), now=NOW) is None


async def test_multi_login_escalates_at_threshold():
    d = _directory(
        _session(token="tok", ip="10.0.0.1", age_min=1),
        _session(token="t2", ip="10.0.0.2", age_min=2),
        _session(token="t3", ip="10.0.0.3", age_min=3),
    )
    v = await SessionIntegrityCheck(d)(_ctx(), now=NOW)
    assert v is not None
    assert v.verdict is Verdict.ESCALATE
    assert v.reason is ReasonCode.SUSPICIOUS_MULTI_LOGIN
    assert v.detail == f"3 unique IPs detected for {EMAIL} in last 10 minutes"


async def test_old_sessions_fall_outside_the_window():
    d = _directory(
        _session(token="tok", ip="10.0.0.1", age_min=1),
        _session(token="t2", ip="10.0.0.2", age_min=20, ttl=86400),
        _session(token="t3", ip="10.0.0.3", age_min=30, ttl=86400),
    )
    assert await SessionIntegrityCheck(d)(_ctx(), now=NOW) is None


async def test_policy_threshold_is_configurable():
    d = _directory(
        _session(token="tok", ip="10.0.0.1", age_min=1),
        _session(token="t2", ip="10.0.0.2", age_min=2),
    )
    check = SessionIntegrityCheck(d, SessionPolicy(multi_login_ip_threshold=2))
    v = await check(_ctx(), now=NOW)
    assert v is not None and v.reason is ReasonCode.SUSPICIOUS_MULTI_LOGIN


async def test_naive_records_count_toward_multi_login():
    naive = [
        SessionRecord(f"t{i}", EMAIL, f"10.0.0.{i}", (NOW - timedelta(minutes=i)).replace(tzinfo=None))
        for i in range(1, 4)
    ]
    d = _directory(*naive)
    assert naive[0].created_at.tzinfo is not None
    assert await d.count_recent_session_ips(EMAIL, NOW - timedelta(minutes=10)) == 3
    v = await SessionIntegrityCheck(d)(_ctx(token="t1"), now=NOW)
    assert v is not None and v.reason is ReasonCode.SUSPICIOUS_MULTI_LOGIN

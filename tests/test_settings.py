from __future__ import annotations

import pytest
from pydantic import ValidationError

from fyiguard.config import Settings
from fyiguard.main import build_directory
from fyiguard.services.audit import LoggingAuditSink, MemoryAuditSink, SqlAuditSink, build_audit_sink
from fyiguard.services.directory import InMemoryDirectory
from fyiguard.services.directory_sql import SqlDirectory


def test_defaults():
    s = Settings()
    assert s.GUARD_FALLBACK == "closed"
    assert s.DIRECTORY_BACKEND == "memory"
    assert s.directory_timeout_s == 1.5
    assert s.protected_prefixes == []
    assert isinstance(build_audit_sink(s), LoggingAuditSink)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GUARD_FALLBACK", "open")
    monkeypatch.setenv("GUARD_PROTECTED_PREFIXES", "/api/chat, /api/v1/prompts,")
    monkeypatch.setenv("MULTI_LOGIN_IP_THRESHOLD", "5")
    s = Settings()
    assert s.GUARD_FALLBACK == "open"
    assert s.protected_prefixes == ["/api/chat", "/api/v1/prompts"]
    assert s.MULTI_LOGIN_IP_THRESHOLD == 5


def test_invalid_fallback_is_rejected(monkeypatch):
    monkeypatch.setenv("GUARD_FALLBACK", "sideways")
    with pytest.raises(ValidationError):
        Settings()


def test_backends_are_selected_from_settings(tmp_path):
    assert isinstance(build_directory(Settings()), InMemoryDirectory)
    s = Settings(
        DIRECTORY_BACKEND="sql",
        DIRECTORY_DSN=f"sqlite:///{tmp_path}/g.db",
        AUDIT_BACKEND="sql",
    )
    directory = build_directory(s)
    assert isinstance(directory, SqlDirectory)
    assert isinstance(build_audit_sink(s, directory.engine), SqlAuditSink)
    assert isinstance(build_audit_sink(Settings(AUDIT_BACKEND="memory")), MemoryAuditSink)

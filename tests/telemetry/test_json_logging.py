from __future__ import annotations

import json
import logging

from fyiguard.middleware import request_id as rid_mod
from fyiguard.telemetry.logging import JsonFormatter, bind


def _record(msg: str, **extra) -> logging.LogRecord:
    rec = logging.LogRecord("fyiguard.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_formatter_includes_extras_and_request_id():
    token = rid_mod._REQUEST_ID.set("req-123")
    try:
        line = JsonFormatter().format(_record("guard verdict", verdict="BLOCK", reason=("a", "b")))
    finally:
        rid_mod._REQUEST_ID.reset(token)
    data = json.loads(line)
    assert data["message"] == "guard verdict"
    assert data["level"] == "INFO"
    assert data["logger"] == "fyiguard.test"
    assert data["request_id"] == "req-123"
    assert data["verdict"] == "BLOCK"
    assert data["reason"] == ["a", "b"]
    assert data["ts"].endswith("Z")


def test_bind_merges_static_context(caplog):
    log = bind(logging.getLogger("fyiguard.bound"), component="guard_middleware")
    with caplog.at_level(logging.WARNING, logger="fyiguard.bound"):
        log.warning("falling back to ALLOW", extra={"path": "/chat"})
    rec = caplog.records[-1]
    assert rec.component == "guard_middleware"
    assert rec.path == "/chat"


def test_credentials_are_masked_at_any_depth():
    line = JsonFormatter().format(
        _record(
            "ctx",
            session_token="tok-abc",
            headers={"Authorization": "Bearer x", "accept": "*/*"},
        )
    )
    data = json.loads(line)
    assert "tok-abc" not in line
    assert data["headers"] == {"Authorization": "[redacted]", "accept": "*/*"}


def test_enums_render_as_values():
    from fyiguard.guards.types import Verdict

    data = json.loads(JsonFormatter().format(_record("v", verdict=Verdict.ESCALATE)))
    assert data["verdict"] == "ESCALATE"


def test_request_id_normalization():
    assert rid_mod.normalize_request_id("  abc-1  ") == "abc-1"
    minted = rid_mod.normalize_request_id("bad id\nwith newline")
    assert minted != "bad id\nwith newline" and len(minted) == 36
    assert len(rid_mod.normalize_request_id(None)) == 36

# fyiguard/telemetry/logging.py
"""JSON-lines logging for the guard service.

Every line carries ``ts``, ``level``, ``logger``, ``message`` and, inside a
request, ``request_id``. Anything passed through ``extra=`` is merged in.
Keys that name credentials are masked before the line is written, so a
session token or API key handed to a log call never reaches the sink.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, MutableMapping, Tuple

from fyiguard.middleware.request_id import get_request_id

REDACTED = "[redacted]"

_SENSITIVE_KEYS: FrozenSet[str] = frozenset(
    {
        "authorization",
        "cookie",
        "api_key",
        "x-api-key",
        "session_token",
        "x-session-token",
        "password",
    }
)

# Attributes every LogRecord has; whatever else is on a record came from extra=.
_RECORD_ATTRS: FrozenSet[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _utc_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _scrub(value: Any) -> Any:
    """Coerce to JSON-safe values, masking credential-named keys at any depth."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _scrub(value.value)
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if str(k).lower() in _SENSITIVE_KEYS else _scrub(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scrub(v) for v in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS and not k.startswith("_")}

        payload: Dict[str, Any] = {
            "ts": _utc_iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = extra.pop("request_id", None) or get_request_id()
        if rid:
            payload["request_id"] = rid
        for key, value in _scrub(extra).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_configured = False


def configure_root_logging(level: int | str = "INFO", *, json_lines: bool = True) -> None:
    """Install a single stdout handler on the root logger, once per process."""
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        JsonFormatter()
        if json_lines
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    _configured = True


class ContextAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger with static context; per-call ``extra`` wins on key clashes."""

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        super().__init__(logger, dict(extra or {}))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        merged: Dict[str, Any] = dict(self.extra or {})
        call_extra = kwargs.get("extra")
        if isinstance(call_extra, Mapping):
            merged.update(call_extra)
        kwargs["extra"] = merged
        return msg, kwargs


def bind(logger: logging.Logger | None = None, **context: Any) -> ContextAdapter:
    """
    Bind context to a logger:

        log = bind(logging.getLogger(__name__), component="guard_middleware")
        log.warning("falling back to ALLOW", extra={"path": request.url.path})
    """
    return ContextAdapter(logger or logging.getLogger(), context)


__all__ = ["REDACTED", "ContextAdapter", "JsonFormatter", "bind", "configure_root_logging"]

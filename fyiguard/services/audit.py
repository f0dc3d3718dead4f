"""Audit log sinks and the fire-and-forget dispatcher.

Every verdict, ALLOW included, is appended here so anomaly detection can look
at the whole action stream. Writes are best-effort: the dispatcher schedules
them as background tasks, observes their outcome, and reports failures on
its own error channel (ERROR log + metric + ``failures`` deque). Nothing
that happens here can change or delay a verdict.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Deque, Dict, Optional, Protocol, Set

from fyiguard.guards.types import GuardContext, GuardVerdict
from fyiguard.models.tables import guard_logs
from fyiguard.observability.metrics import inc_audit_dropped, inc_audit_failure

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from fyiguard.config import Settings

log = logging.getLogger(__name__)

_AUDIT_LOGGER_NAME = "fyiguard_audit"


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class GuardLogRecord:
    id: str
    created_at: datetime
    verdict: str
    reason: str
    detail: str
    risk_level: str
    action_taken: str
    user_email: str
    user_role: str
    org_id: Optional[str]
    action: Optional[str]
    ip_address: Optional[str]
    payload: Optional[str]

    @classmethod
    def from_verdict(
        cls,
        verdict: GuardVerdict,
        ctx: GuardContext,
        *,
        max_payload_chars: int = 2000,
    ) -> "GuardLogRecord":
        payload: Optional[str] = None
        if ctx.payload:
            raw = json.dumps(
                dict(ctx.payload), separators=(",", ":"), ensure_ascii=False, default=str
            )
            payload = raw[:max_payload_chars]
        return cls(
            id=uuid.uuid4().hex,
            created_at=verdict.timestamp,
            verdict=verdict.verdict.value,
            reason=verdict.reason.value,
            detail=verdict.detail,
            risk_level=verdict.risk_level.value,
            action_taken=verdict.action_taken.value,
            user_email=ctx.user_email,
            user_role=ctx.user_role.value,
            org_id=ctx.org_id,
            action=ctx.action,
            ip_address=ctx.session_ip,
            payload=payload,
        )

    @classmethod
    def from_failure(
        cls,
        ctx: GuardContext,
        error: BaseException,
        *,
        now: datetime,
        max_payload_chars: int = 2000,
    ) -> "GuardLogRecord":
        """Incident row for an evaluation that could not reach a verdict."""
        text = " ".join(ctx.text_inputs or ())
        return cls(
            id=uuid.uuid4().hex,
            created_at=now,
            verdict="ERROR",
            reason="GUARD_UNAVAILABLE",
            detail=f"{type(error).__name__}: {error}"[:500],
            risk_level="critical",
            action_taken="error",
            user_email=ctx.user_email,
            user_role=ctx.user_role.value,
            org_id=ctx.org_id,
            action=ctx.action,
            ip_address=ctx.session_ip,
            payload=text[:min(max_payload_chars, 200)] or None,
        )

    def to_json(self) -> str:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class AuditSink(Protocol):
    name: str

    async def append(self, record: GuardLogRecord) -> None: ...


# ------------------------------------------------------------------ sinks


class MemoryAuditSink:
    """Bounded in-process ring; dev mode and tests."""

    name = "memory"

    def __init__(self, maxlen: int = 500) -> None:
        self.records: Deque[GuardLogRecord] = deque(maxlen=maxlen)

    async def append(self, record: GuardLogRecord) -> None:
        self.records.append(record)


class LoggingAuditSink:
    """One JSON line per record on the ``fyiguard_audit`` logger."""

    name = "log"

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(_AUDIT_LOGGER_NAME)

    async def append(self, record: GuardLogRecord) -> None:
        self.logger.info(record.to_json())


class SqlAuditSink:
    name = "sql"

    def __init__(self, engine: "Engine") -> None:
        self.engine = engine

    def _insert(self, record: GuardLogRecord) -> None:
        with self.engine.begin() as cx:
            cx.execute(guard_logs.insert().values(**asdict(record)))

    async def append(self, record: GuardLogRecord) -> None:
        await asyncio.to_thread(self._insert, record)


class RedisAuditSink:
    """Append to a capped Redis list (``RPUSH`` + ``LTRIM``)."""

    name = "redis"

    def __init__(self, client: Any, *, key: str, maxlen: int = 50000) -> None:
        self.client = client
        self.key = key
        self.maxlen = maxlen

    @classmethod
    def from_url(cls, url: str, *, key: str, maxlen: int = 50000) -> "RedisAuditSink":
        from redis.asyncio import Redis

        return cls(Redis.from_url(url, decode_responses=True), key=key, maxlen=maxlen)

    async def append(self, record: GuardLogRecord) -> None:
        pipe = self.client.pipeline()
        pipe.rpush(self.key, record.to_json())
        pipe.ltrim(self.key, -self.maxlen, -1)
        await pipe.execute()

    async def close(self) -> None:
        await self.client.aclose()


def build_audit_sink(settings: "Settings", engine: Optional["Engine"] = None) -> AuditSink:
    backend = settings.AUDIT_BACKEND
    if backend == "memory":
        return MemoryAuditSink()
    if backend == "sql":
        if engine is None:
            from fyiguard.services.directory_sql import create_sql_engine

            engine = create_sql_engine(
                settings.DIRECTORY_DSN, autocreate=settings.DIRECTORY_AUTOCREATE
            )
        return SqlAuditSink(engine)
    if backend == "redis":
        url = settings.REDIS_URL or "redis://localhost:6379/0"
        return RedisAuditSink.from_url(
            url, key=settings.AUDIT_REDIS_KEY, maxlen=settings.AUDIT_REDIS_MAXLEN
        )
    return LoggingAuditSink()


# ------------------------------------------------------------- dispatcher


@dataclass(frozen=True)
class AuditFailure:
    record: GuardLogRecord
    error: str


class AuditDispatcher:
    """Schedule sink writes without joining them.

    ``submit`` never raises and never awaits. Outcomes are observed through a
    done-callback; ``drain`` exists for shutdown and tests.
    """

    def __init__(
        self,
        sink: AuditSink,
        *,
        max_pending: int = 1000,
        max_payload_chars: int = 2000,
        max_failures: int = 200,
    ) -> None:
        self.sink = sink
        self.max_pending = max_pending
        self.max_payload_chars = max_payload_chars
        self.failures: Deque[AuditFailure] = deque(maxlen=max_failures)
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _report(self, record: GuardLogRecord, error: str) -> None:
        self.failures.append(AuditFailure(record=record, error=error))
        inc_audit_failure(getattr(self.sink, "name", "unknown"))
        log.error(
            "failed to write guard log",
            extra={
                "sink": getattr(self.sink, "name", "unknown"),
                "error": error,
                "verdict": record.verdict,
                "reason": record.reason,
            },
        )

    def submit(self, verdict: GuardVerdict, ctx: GuardContext) -> None:
        try:
            record = GuardLogRecord.from_verdict(
                verdict, ctx, max_payload_chars=self.max_payload_chars
            )
        except Exception as exc:
            log.error("could not build guard log record: %s", exc)
            return

        self._schedule(record)

    def submit_failure(self, ctx: GuardContext, error: BaseException, *, now: datetime) -> None:
        """Record an evaluation that failed before reaching a verdict."""
        try:
            record = GuardLogRecord.from_failure(
                ctx, error, now=now, max_payload_chars=self.max_payload_chars
            )
        except Exception as exc:
            log.error("could not build guard failure record: %s", exc)
            return
        self._schedule(record)

    def _schedule(self, record: GuardLogRecord) -> None:
        if len(self._tasks) >= self.max_pending:
            inc_audit_dropped()
            self._report(record, "queue_full")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._report(record, "no_running_loop")
            return

        task = loop.create_task(self._write(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, record: GuardLogRecord) -> None:
        try:
            await self.sink.append(record)
        except asyncio.CancelledError:
            self._report(record, "cancelled")
            raise
        except Exception as exc:
            self._report(record, f"{type(exc).__name__}: {exc}")

    async def drain(self, timeout: Optional[float] = None) -> None:
        if not self._tasks:
            return
        pending = list(self._tasks)
        _done, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()

    async def close(self, timeout: Optional[float] = 5.0) -> None:
        await self.drain(timeout=timeout)
        closer = getattr(self.sink, "close", None)
        if closer is not None:
            try:
                await closer()
            except Exception as exc:
                log.warning("audit sink close failed: %s", exc)

    def stats(self) -> Dict[str, Any]:
        return {
            "sink": getattr(self.sink, "name", "unknown"),
            "pending": self.pending,
            "failures": len(self.failures),
        }


__all__ = [
    "AuditDispatcher",
    "AuditFailure",
    "AuditSink",
    "GuardLogRecord",
    "LoggingAuditSink",
    "MemoryAuditSink",
    "RedisAuditSink",
    "SqlAuditSink",
    "build_audit_sink",
]

"""Verdict orchestrator.

Evaluation order is fixed:

    1. override detection   (always first, cannot be disabled)
    2. content & input guard
    3. role-based action guard
    4. domain access control
    5. seat limit enforcement
    6. session integrity

The first check with an opinion wins and later checks never run, so they
perform no directory reads. If no check has an opinion the result is
ALLOW/OK. Every returned verdict is handed to the audit dispatcher without
waiting for the write. Directory failures (``DirectoryUnavailable``) are not
caught here; the adapter applies the fallback posture.
"""

from __future__ import annotations

import inspect
import logging
import time
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple

from fyiguard.guards.base import CheckResult, GuardCheck
from fyiguard.guards.content import check_malicious_input
from fyiguard.guards.domain import DomainAccessCheck
from fyiguard.guards.override import check_override_attempt
from fyiguard.guards.roles import check_permission
from fyiguard.guards.seats import SeatLimitCheck
from fyiguard.guards.session import SessionIntegrityCheck, SessionPolicy
from fyiguard.guards.types import (
    ActionTaken,
    GuardContext,
    GuardVerdict,
    ReasonCode,
    RiskLevel,
    Verdict,
    make_verdict,
    utcnow,
)
from fyiguard.observability.metrics import inc_verdict, observe_check_latency
from fyiguard.services.audit import AuditDispatcher
from fyiguard.services.directory import DirectoryStore

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]
NamedCheck = Tuple[str, GuardCheck]


class VerdictEngine:
    def __init__(
        self,
        directory: DirectoryStore,
        dispatcher: Optional[AuditDispatcher] = None,
        *,
        clock: Optional[Clock] = None,
        session_policy: Optional[SessionPolicy] = None,
    ) -> None:
        self.directory = directory
        self.dispatcher = dispatcher
        self.clock: Clock = clock or utcnow
        self.check_order: Tuple[NamedCheck, ...] = (
            ("override", check_override_attempt),
            ("content", check_malicious_input),
            ("role", check_permission),
            ("domain_access", DomainAccessCheck(directory)),
            ("seat_limit", SeatLimitCheck(directory)),
            ("session_integrity", SessionIntegrityCheck(directory, session_policy)),
        )
        self.fast_path: Tuple[NamedCheck, ...] = self.check_order[:2]

    async def _run_checks(
        self, checks: Sequence[NamedCheck], ctx: GuardContext, now: datetime
    ) -> Optional[Tuple[str, GuardVerdict]]:
        for name, check in checks:
            started = time.perf_counter()
            try:
                result: CheckResult
                outcome = check(ctx, now=now)
                if inspect.isawaitable(outcome):
                    result = await outcome
                else:
                    result = outcome
            finally:
                observe_check_latency(name, time.perf_counter() - started)
            if result is not None:
                return name, result
        return None

    def _finish(self, ctx: GuardContext, verdict: GuardVerdict, check: str) -> GuardVerdict:
        inc_verdict(verdict.verdict.value, verdict.reason.value)
        log.info(
            "guard verdict",
            extra={
                "verdict": verdict.verdict.value,
                "reason": verdict.reason.value,
                "check": check,
                "org_id": ctx.org_id,
                "guard_action": ctx.action,
            },
        )
        if self.dispatcher is not None:
            self.dispatcher.submit(verdict, ctx)
        return verdict

    def record_failure(self, ctx: GuardContext, error: BaseException) -> None:
        """Audit an evaluation the adapter could not complete."""
        inc_verdict("ERROR", "GUARD_UNAVAILABLE")
        if self.dispatcher is not None:
            self.dispatcher.submit_failure(ctx, error, now=self.clock())

    async def evaluate(self, ctx: GuardContext) -> GuardVerdict:
        now = self.clock()
        hit = await self._run_checks(self.check_order, ctx, now)
        if hit is not None:
            name, verdict = hit
            return self._finish(ctx, verdict, name)
        allow = make_verdict(
            ctx,
            Verdict.ALLOW,
            ReasonCode.OK,
            "All guard checks passed",
            RiskLevel.LOW,
            ActionTaken.LOGGED,
            now=now,
        )
        return self._finish(ctx, allow, "none")

    async def check_input(self, ctx: GuardContext) -> GuardVerdict:
        """Override + content checks only; no directory I/O."""
        now = self.clock()
        hit = await self._run_checks(self.fast_path, ctx, now)
        if hit is not None:
            name, verdict = hit
            return self._finish(ctx, verdict, name)
        allow = make_verdict(
            ctx,
            Verdict.ALLOW,
            ReasonCode.OK,
            "Input is clean",
            RiskLevel.LOW,
            ActionTaken.LOGGED,
            now=now,
        )
        return self._finish(ctx, allow, "none")


__all__ = ["Clock", "VerdictEngine"]

"""
Guard middleware: evaluates prompt-bearing requests before they reach a route.

Behavior
- Only POSTs under the configured path prefixes whose JSON body carries a
  string ``prompt_field`` are evaluated; everything else passes through.
- BLOCK -> 403 with the reason code and risk level; ``detail`` is withheld.
- ESCALATE -> the request continues with X-Guard-Escalated / X-Guard-Reason /
  X-Guard-Risk-Level response headers.
- Identity comes from ``request.state.user_email`` / ``user_role`` when an
  upstream authenticator set them. X-User-Email / X-User-Role are honored
  only on requests that present the configured API key; otherwise the
  caller is evaluated as an anonymous member.
- The verdict is attached to ``request.state.guard_verdict``.
- Directory failures apply the fallback posture: ``closed`` -> 503,
  ``open`` -> continue with a warning. Either way an ERROR record is audited.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from fyiguard.config import FallbackPosture
from fyiguard.dependencies.auth import has_trusted_api_key
from fyiguard.guards.base import GuardException
from fyiguard.guards.roles import to_user_role
from fyiguard.guards.types import GuardContext, GuardVerdict, UserRole, Verdict
from fyiguard.services.engine import VerdictEngine
from fyiguard.telemetry.logging import bind

log = logging.getLogger(__name__)

GENERIC_DENIAL = "Access denied. Contact your administrator."
PENDING_REVIEW = "Request is pending admin review."
ANONYMOUS = "anonymous"

EngineGetter = Callable[[Request], Optional[VerdictEngine]]

# Identity headers become context fields and are not rescanned as free text.
_IDENTITY_HEADERS = frozenset({"x-user-email", "x-user-role", "x-session-token"})


def unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "error": "Security evaluation unavailable. Request blocked.",
            "code": "GUARD_UNAVAILABLE",
        },
    )


def client_ip(request: Request) -> Optional[str]:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _engine_from_state(request: Request) -> Optional[VerdictEngine]:
    return getattr(request.app.state, "engine", None)


def escalation_headers(verdict: GuardVerdict) -> Dict[str, str]:
    return {
        "X-Guard-Escalated": "true",
        "X-Guard-Reason": verdict.reason.value,
        "X-Guard-Risk-Level": verdict.risk_level.value,
    }


class GuardMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        protected_prefixes: Iterable[str] = (),
        engine_getter: Optional[EngineGetter] = None,
        prompt_field: str = "prompt",
        monitor_only: bool = False,
        fallback: FallbackPosture = "closed",
    ) -> None:
        super().__init__(app)
        self.protected_prefixes = tuple(p for p in protected_prefixes if p)
        self.engine_getter: EngineGetter = engine_getter or _engine_from_state
        self.prompt_field = prompt_field
        self.monitor_only = monitor_only
        self.fallback = fallback
        self._log = bind(log, component="guard_middleware")

    def _is_protected(self, request: Request) -> bool:
        if request.method != "POST":
            return False
        path = request.url.path
        return any(path.startswith(prefix) for prefix in self.protected_prefixes)

    def _identity(self, request: Request) -> Tuple[str, UserRole]:
        state_email = getattr(request.state, "user_email", None)
        if state_email:
            return str(state_email), to_user_role(getattr(request.state, "user_role", None))
        claimed = request.headers.get("x-user-email")
        if has_trusted_api_key(request):
            return claimed or ANONYMOUS, to_user_role(request.headers.get("x-user-role"))
        if claimed:
            self._log.warning(
                "ignoring identity headers without a trusted api key",
                extra={"path": request.url.path},
            )
        return ANONYMOUS, UserRole.MEMBER

    def _build_context(self, request: Request, body: Dict[str, Any], prompt: str) -> GuardContext:
        org_id = body.get("orgId")
        email, role = self._identity(request)
        return GuardContext(
            user_email=email,
            user_role=role,
            org_id=str(org_id) if org_id else None,
            session_token=request.headers.get("x-session-token") or None,
            session_ip=client_ip(request),
            text_inputs=(prompt,),
            headers={
                k: v for k, v in request.headers.items() if k.lower() not in _IDENTITY_HEADERS
            },
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self.protected_prefixes or not self._is_protected(request):
            return await call_next(request)

        body_bytes = await request.body()

        async def _receive() -> dict:
            return {"type": "http.request", "body": body_bytes, "more_body": False}

        # Restore stream for downstream
        request._receive = _receive

        try:
            body = json.loads(body_bytes or b"{}")
        except (ValueError, UnicodeDecodeError):
            return await call_next(request)
        prompt = body.get(self.prompt_field) if isinstance(body, dict) else None
        if not isinstance(prompt, str) or not prompt:
            return await call_next(request)

        engine = self.engine_getter(request)
        if engine is None:
            self._log.error("guard engine not configured")
            if self.fallback == "closed":
                return unavailable_response()
            return await call_next(request)

        ctx = self._build_context(request, body, prompt)
        try:
            verdict = await engine.evaluate(ctx)
        except GuardException as exc:
            self._log.error(
                "guard evaluation failed",
                extra={"error": str(exc), "path": request.url.path},
            )
            engine.record_failure(ctx, exc)
            if self.fallback == "closed":
                return unavailable_response()
            self._log.warning("falling back to ALLOW", extra={"path": request.url.path})
            return await call_next(request)

        request.state.guard_verdict = verdict

        if verdict.verdict is Verdict.BLOCK and not self.monitor_only:
            return JSONResponse(
                status_code=403,
                content={
                    "error": "Prompt blocked by security policy",
                    "reason": verdict.reason.value,
                    "risk_level": verdict.risk_level.value,
                },
            )

        response = await call_next(request)
        if verdict.verdict is Verdict.ESCALATE:
            for key, value in escalation_headers(verdict).items():
                response.headers[key] = value
        return response


__all__ = [
    "GENERIC_DENIAL",
    "GuardMiddleware",
    "PENDING_REVIEW",
    "client_ip",
    "escalation_headers",
    "unavailable_response",
]

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from fyiguard.config import Settings
from fyiguard.dependencies.auth import require_api_key
from fyiguard.guards.base import GuardException
from fyiguard.guards.types import GuardVerdict, Verdict
from fyiguard.middleware.guard import (
    GENERIC_DENIAL,
    PENDING_REVIEW,
    client_ip,
    unavailable_response,
)
from fyiguard.schemas.guard import CheckInputRequest, EvaluateRequest
from fyiguard.services.engine import VerdictEngine

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/guard", tags=["guard"], dependencies=[Depends(require_api_key)])


def _engine(request: Request) -> VerdictEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="guard engine not configured")
    return engine


def _fallback(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings.GUARD_FALLBACK
    return "closed"


def _fail_open_body() -> dict:
    return {
        "verdict": Verdict.ALLOW.value,
        "reason": "OK",
        "message": "Security evaluation unavailable; allowed by fail-open policy.",
        "risk_level": "low",
        "degraded": True,
    }


def _render(verdict: GuardVerdict) -> JSONResponse:
    if verdict.verdict is Verdict.BLOCK:
        return JSONResponse(status_code=403, content=verdict.public_dict(GENERIC_DENIAL))
    if verdict.verdict is Verdict.ESCALATE:
        return JSONResponse(status_code=202, content=verdict.public_dict(PENDING_REVIEW))
    return JSONResponse(status_code=200, content=verdict.to_dict())


@router.post("/evaluate")
async def evaluate(body: EvaluateRequest, request: Request) -> JSONResponse:
    """Run the full check chain and return the verdict.

    BLOCK and ESCALATE bodies carry only the reason code and risk level;
    the diagnostic ``detail`` goes to the audit log.
    """
    engine = _engine(request)
    ctx = body.to_context(client_ip=client_ip(request))
    try:
        verdict = await engine.evaluate(ctx)
    except GuardException as exc:
        log.error("guard evaluation failed", extra={"error": str(exc)})
        engine.record_failure(ctx, exc)
        if _fallback(request) == "closed":
            return unavailable_response()
        log.warning("falling back to ALLOW", extra={"user_email": ctx.user_email})
        return JSONResponse(status_code=200, content=_fail_open_body())
    return _render(verdict)


@router.post("/check-input")
async def check_input(body: CheckInputRequest, request: Request) -> JSONResponse:
    """Fast path for pre-submission scanning: override + content checks only."""
    engine = _engine(request)
    verdict = await engine.check_input(body.to_context())
    if verdict.verdict is Verdict.BLOCK:
        content = verdict.public_dict(GENERIC_DENIAL)
        content.pop("timestamp", None)
        return JSONResponse(status_code=403, content=content)
    return JSONResponse(
        status_code=200,
        content={
            "verdict": Verdict.ALLOW.value,
            "reason": "OK",
            "message": "Input is clean.",
            "risk_level": "low",
        },
    )


__all__ = ["router"]

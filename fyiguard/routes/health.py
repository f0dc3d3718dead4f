from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter(tags=["ops"])
metrics_router = APIRouter(tags=["ops"])


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    state = request.app.state
    payload: Dict[str, Any] = {
        "status": "ok",
        "engine": getattr(state, "engine", None) is not None,
    }
    settings = getattr(state, "settings", None)
    if settings is not None:
        payload["env"] = settings.ENV
        payload["version"] = settings.VERSION
    dispatcher = getattr(state, "dispatcher", None)
    if dispatcher is not None:
        payload["audit"] = dispatcher.stats()
    return payload


@metrics_router.get("/metrics")
async def metrics() -> PlainTextResponse:
    return PlainTextResponse(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


__all__ = ["metrics_router", "router"]

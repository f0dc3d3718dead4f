from __future__ import annotations

import hmac

from fastapi import HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED

from fyiguard.config import Settings


def _settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings
    return Settings()


def _key_matches(request: Request, settings: Settings) -> bool:
    supplied = request.headers.get(settings.API_KEY_HEADER) or ""
    return hmac.compare_digest(supplied.encode("utf-8"), (settings.API_KEY or "").encode("utf-8"))


def has_trusted_api_key(request: Request) -> bool:
    """True only when a key is configured and the request presents it."""
    settings = _settings(request)
    return bool(settings.API_KEY) and _key_matches(request, settings)


def require_api_key(request: Request) -> None:
    """
    Gate guard routes on ``X-API-Key`` when an API key is configured.
    With no key configured the routes are open (dev posture).
    """
    settings = _settings(request)
    if not settings.API_KEY:
        return
    if not _key_matches(request, settings):
        raise HTTPException(
            status_code=HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "ApiKey"},
        )


__all__ = ["has_trusted_api_key", "require_api_key"]

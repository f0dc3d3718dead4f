from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_HEADER = "X-Request-ID"
# Caller-supplied ids land in audit and log lines verbatim.
_ACCEPTABLE_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


def normalize_request_id(raw: Optional[str]) -> str:
    """Keep a well-formed incoming id, otherwise mint a UUID4."""
    candidate = (raw or "").strip()
    if candidate and _ACCEPTABLE_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id that JSON log lines pick up."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = normalize_request_id(request.headers.get(_HEADER))
        token = _REQUEST_ID.set(rid)
        try:
            request.state.request_id = rid
            response: Response = await call_next(request)
        finally:
            _REQUEST_ID.reset(token)

        response.headers.setdefault(_HEADER, rid)
        return response


__all__ = ["RequestIDMiddleware", "get_request_id", "normalize_request_id"]

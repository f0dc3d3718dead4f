# fyiguard/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from fyiguard.config import Settings, get_settings
from fyiguard.guards.session import SessionPolicy
from fyiguard.middleware.guard import GuardMiddleware
from fyiguard.middleware.request_id import RequestIDMiddleware
from fyiguard.routes.guard import router as guard_router
from fyiguard.routes.health import metrics_router
from fyiguard.routes.health import router as health_router
from fyiguard.services.audit import AuditDispatcher, AuditSink, build_audit_sink
from fyiguard.services.directory import DirectoryStore, InMemoryDirectory, TimeboxedDirectory
from fyiguard.services.engine import Clock, VerdictEngine
from fyiguard.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)


def build_directory(settings: Settings) -> DirectoryStore:
    if settings.DIRECTORY_BACKEND == "sql":
        from fyiguard.services.directory_sql import SqlDirectory, create_sql_engine

        engine = create_sql_engine(settings.DIRECTORY_DSN, autocreate=settings.DIRECTORY_AUTOCREATE)
        return SqlDirectory(engine)
    return InMemoryDirectory()


def build_engine(
    settings: Settings,
    *,
    directory: Optional[DirectoryStore] = None,
    audit_sink: Optional[AuditSink] = None,
    clock: Optional[Clock] = None,
) -> tuple[VerdictEngine, AuditDispatcher]:
    store = directory if directory is not None else build_directory(settings)
    sql_engine = getattr(store, "engine", None)
    sink = audit_sink if audit_sink is not None else build_audit_sink(settings, sql_engine)
    dispatcher = AuditDispatcher(
        sink,
        max_pending=settings.AUDIT_MAX_PENDING,
        max_payload_chars=settings.AUDIT_MAX_PAYLOAD_CHARS,
    )
    engine = VerdictEngine(
        TimeboxedDirectory(store, timeout_s=settings.directory_timeout_s),
        dispatcher,
        clock=clock,
        session_policy=SessionPolicy(
            default_ttl_seconds=settings.SESSION_DEFAULT_TTL_SECONDS,
            multi_login_window_seconds=settings.MULTI_LOGIN_WINDOW_SECONDS,
            multi_login_ip_threshold=settings.MULTI_LOGIN_IP_THRESHOLD,
        ),
    )
    return engine, dispatcher


def create_app(
    settings: Optional[Settings] = None,
    *,
    directory: Optional[DirectoryStore] = None,
    audit_sink: Optional[AuditSink] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_root_logging(settings.LOG_LEVEL, json_lines=settings.LOG_JSON)

    engine, dispatcher = build_engine(
        settings, directory=directory, audit_sink=audit_sink, clock=clock
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info(
            "guard engine ready",
            extra={
                "directory": settings.DIRECTORY_BACKEND,
                "audit": dispatcher.sink.name,
                "fallback": settings.GUARD_FALLBACK,
            },
        )
        try:
            yield
        finally:
            await dispatcher.close()

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.dispatcher = dispatcher

    app.include_router(health_router)
    if settings.METRICS_ENABLED:
        app.include_router(metrics_router)
    app.include_router(guard_router)

    # Starlette runs the last-added middleware first.
    app.add_middleware(
        GuardMiddleware,
        protected_prefixes=settings.protected_prefixes,
        monitor_only=settings.GUARD_MONITOR_ONLY,
        fallback=settings.GUARD_FALLBACK,
    )
    app.add_middleware(RequestIDMiddleware)
    return app


__all__ = ["build_directory", "build_engine", "create_app"]

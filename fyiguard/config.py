# fyiguard/config.py
from __future__ import annotations

import os
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")

FallbackPosture = Literal["closed", "open"]


class Settings(BaseSettings):
    # --- Identity / Build ---
    APP_NAME: str = Field(default="FYI Guard")
    ENV: str = Field(default="dev")
    VERSION: str = Field(default=APP_VERSION)

    # --- Core ---
    API_KEY: Optional[str] = None
    API_KEY_HEADER: str = Field(default="X-API-Key")

    # --- Directory store ---
    DIRECTORY_BACKEND: Literal["memory", "sql"] = Field(default="memory")
    DIRECTORY_DSN: str = Field(default="sqlite:///./data/fyiguard.db")
    DIRECTORY_AUTOCREATE: bool = Field(default=True)
    # Per-lookup budget; a slow store must not hang an evaluation.
    DIRECTORY_TIMEOUT_MS: int = Field(default=1500, ge=1, le=30000)

    # --- Audit log ---
    AUDIT_BACKEND: Literal["memory", "log", "sql", "redis"] = Field(default="log")
    AUDIT_REDIS_KEY: str = Field(default="fyiguard:guard_log:v1")
    AUDIT_REDIS_MAXLEN: int = Field(default=50000, ge=1)
    AUDIT_MAX_PAYLOAD_CHARS: int = Field(default=2000, ge=0)
    AUDIT_MAX_PENDING: int = Field(default=1000, ge=1)
    REDIS_URL: Optional[str] = None  # e.g. redis://localhost:6379/0

    # --- Guard adapter ---
    GUARD_FALLBACK: FallbackPosture = Field(default="closed")
    GUARD_MONITOR_ONLY: bool = Field(default=False)
    GUARD_PROTECTED_PREFIXES: str = Field(default="")  # comma-separated path prefixes

    # --- Session integrity ---
    SESSION_DEFAULT_TTL_SECONDS: int = Field(default=3600, ge=1)
    MULTI_LOGIN_WINDOW_SECONDS: int = Field(default=600, ge=1)
    MULTI_LOGIN_IP_THRESHOLD: int = Field(default=3, ge=1)

    # --- Logging / metrics ---
    LOG_JSON: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    METRICS_ENABLED: bool = Field(default=True)

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def protected_prefixes(self) -> List[str]:
        return [part.strip() for part in self.GUARD_PROTECTED_PREFIXES.split(",") if part.strip()]

    @property
    def directory_timeout_s(self) -> float:
        return self.DIRECTORY_TIMEOUT_MS / 1000.0


def get_settings() -> Settings:
    return Settings()


__all__ = ["APP_VERSION", "FallbackPosture", "Settings", "get_settings"]

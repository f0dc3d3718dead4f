# tests/conftest.py
from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fyiguard.services.directory import InMemoryDirectory  # noqa: E402


class CountingDirectory:
    """Wraps a store and records every lookup, for short-circuit assertions."""

    def __init__(self, inner: InMemoryDirectory) -> None:
        self.inner = inner
        self.calls: List[str] = []

    async def get_organization(self, org_id: str):
        self.calls.append("get_organization")
        return await self.inner.get_organization(org_id)

    async def get_session(self, token: str):
        self.calls.append("get_session")
        return await self.inner.get_session(token)

    async def count_recent_session_ips(self, email: str, since: datetime) -> int:
        self.calls.append("count_recent_session_ips")
        return await self.inner.count_recent_session_ips(email, since)


class FailingSink:
    name = "failing"

    def __init__(self) -> None:
        self.attempts = 0

    async def append(self, record: Any) -> None:
        self.attempts += 1
        raise RuntimeError("audit store down")


class BrokenDirectory:
    async def get_organization(self, org_id: str):
        raise ConnectionError("db unreachable")

    async def get_session(self, token: str):
        raise ConnectionError("db unreachable")

    async def count_recent_session_ips(self, email: str, since: datetime) -> int:
        raise ConnectionError("db unreachable")


class SlowDirectory(InMemoryDirectory):
    async def get_organization(self, org_id: str):
        await asyncio.sleep(5)
        return await super().get_organization(org_id)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None

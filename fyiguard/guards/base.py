"""Base guard protocol definitions."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Optional, Protocol, Union

from fyiguard.guards.types import GuardContext, GuardVerdict

CheckResult = Optional[GuardVerdict]


class GuardCheck(Protocol):
    """A single check: ``None`` means no opinion, a verdict is terminal."""

    def __call__(
        self, ctx: GuardContext, *, now: datetime
    ) -> Union[CheckResult, Awaitable[CheckResult]]: ...


class GuardException(Exception):
    """Generic guard failure wrapper."""


class DirectoryUnavailable(GuardException):
    """A directory lookup failed or exceeded its time budget."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(message or f"directory lookup failed: {operation}")


__all__ = ["CheckResult", "DirectoryUnavailable", "GuardCheck", "GuardException"]

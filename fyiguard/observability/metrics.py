from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

_log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Metrics must never raise into the request path; failures are logged at
# DEBUG so misconfigurations are still diagnosable.
# -----------------------------------------------------------------------------
def _best_effort(msg: str, fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:  # pragma: no cover
        _log.debug("%s: %s", msg, e)


C = TypeVar("C", Counter, Histogram)


def _registered(reg: CollectorRegistry, name: str, kind: Type[C]) -> Optional[C]:
    names_map = getattr(reg, "_names_to_collectors", None)
    if isinstance(names_map, dict):
        existing = names_map.get(name)
        if isinstance(existing, kind):
            return existing
    return None


def _collector(
    kind: Type[C],
    name: str,
    doc: str,
    labelnames: Tuple[str, ...] = (),
    registry: Optional[CollectorRegistry] = None,
    **kwargs: Any,
) -> C:
    """Return the collector registered under ``name`` or register a new one.

    Repeated calls with the same name return the same collector.
    """
    reg = registry or REGISTRY
    existing = _registered(reg, name, kind)
    if existing is not None:
        return existing
    try:
        return kind(name, doc, labelnames=labelnames, registry=reg, **kwargs)
    except ValueError as e:
        found = _registered(reg, name, kind)
        if found is not None:
            return found
        _log.debug("metric %s not registered: %s", name, e)
        # counts but is not exposed
        return kind(name, doc, labelnames=labelnames, registry=None, **kwargs)


# --- Verdict metrics -----------------------------------------------------------

verdicts_total = _collector(
    Counter,
    "fyiguard_verdicts_total",
    "Guard verdicts returned, by verdict and reason",
    ("verdict", "reason"),
)
check_latency_seconds = _collector(
    Histogram,
    "fyiguard_check_latency_seconds",
    "Latency of individual guard checks",
    ("check",),
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)


def inc_verdict(verdict: str, reason: str) -> None:
    _best_effort(
        "inc fyiguard_verdicts_total",
        lambda: verdicts_total.labels(verdict=verdict, reason=reason).inc(),
    )


def observe_check_latency(check: str, seconds: float) -> None:
    _best_effort(
        "observe fyiguard_check_latency_seconds",
        lambda: check_latency_seconds.labels(check=check).observe(max(seconds, 0.0)),
    )


# --- Dependency failure metrics ------------------------------------------------

audit_failures_total = _collector(
    Counter,
    "fyiguard_audit_failures_total",
    "Audit log writes that failed, by sink",
    ("sink",),
)
audit_dropped_total = _collector(
    Counter,
    "fyiguard_audit_dropped_total",
    "Audit log writes dropped because too many were in flight",
)
directory_failures_total = _collector(
    Counter,
    "fyiguard_directory_failures_total",
    "Directory lookups that failed or timed out",
    ("operation",),
)


def inc_audit_failure(sink: str) -> None:
    _best_effort(
        "inc fyiguard_audit_failures_total",
        lambda: audit_failures_total.labels(sink=sink or "unknown").inc(),
    )


def inc_audit_dropped() -> None:
    _best_effort("inc fyiguard_audit_dropped_total", lambda: audit_dropped_total.inc())


def inc_directory_failure(operation: str) -> None:
    _best_effort(
        "inc fyiguard_directory_failures_total",
        lambda: directory_failures_total.labels(operation=operation).inc(),
    )


__all__ = [
    "audit_dropped_total",
    "audit_failures_total",
    "check_latency_seconds",
    "directory_failures_total",
    "inc_audit_dropped",
    "inc_audit_failure",
    "inc_directory_failure",
    "inc_verdict",
    "observe_check_latency",
    "verdicts_total",
]

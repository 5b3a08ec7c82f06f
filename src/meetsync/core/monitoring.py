"""Prometheus metrics for HTTP traffic and sync passes.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- track_sync_pass(): Context manager recording pass outcome and duration
- record_sync_counters(): Publish per-stage event counts of a finished pass
- get_metrics_response(): Response body for /metrics
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Sync Metrics ─────────────────────────────────────────────────────────────

sync_passes_total = Counter(
    "sync_passes_total",
    "Total meeting sync passes",
    ["status"],
)

sync_duration_seconds = Histogram(
    "sync_duration_seconds",
    "Meeting sync pass duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

sync_events_total = Counter(
    "sync_events_total",
    "Calendar events seen by sync passes, per pipeline stage",
    ["stage"],
)

sync_scoped_failures_total = Counter(
    "sync_scoped_failures_total",
    "Failures absorbed at an organizer or meeting boundary",
    ["scope"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sync Metrics Helpers ─────────────────────────────────────────────────────


@asynccontextmanager
async def track_sync_pass() -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks one sync pass.

    Usage:
        async with track_sync_pass() as tracker:
            result = await run_pass(...)
            tracker["status"] = "partial" if failures else "success"

    Records the pass duration and a pass count labelled with the final
    status ("error" when the body raises, "timeout" if set by the body).
    """
    tracker: dict[str, Any] = {"status": "success"}
    start_time = time.perf_counter()

    try:
        yield tracker
    except Exception:
        if tracker["status"] == "success":
            tracker["status"] = "error"
        raise
    finally:
        sync_duration_seconds.observe(time.perf_counter() - start_time)
        sync_passes_total.labels(status=tracker["status"]).inc()


def record_sync_counters(counters: Any) -> None:
    """Publish stage counts and scoped failures of a finished pass."""
    for stage, value in (
        ("fetched", counters.events_fetched),
        ("online", counters.online_events),
        ("matched", counters.matched),
        ("with_transcript", counters.with_transcript),
        ("persisted", counters.persisted),
    ):
        if value:
            sync_events_total.labels(stage=stage).inc(value)

    if counters.organizer_failures:
        sync_scoped_failures_total.labels(scope="organizer").inc(
            counters.organizer_failures
        )
    if counters.persist_failures:
        sync_scoped_failures_total.labels(scope="meeting").inc(
            counters.persist_failures
        )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

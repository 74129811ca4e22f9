"""
Lightweight metrics collection for scorewire.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
FETCH_REQUESTS = Counter(
    "sw_fetch_requests_total",
    "Outbound scraper requests",
    ["host", "status"],
)
ROBOTS_DENIALS = Counter(
    "sw_robots_denials_total",
    "Fetches skipped because robots.txt disallowed them",
    ["host"],
)
ADAPTER_ERRORS = Counter(
    "sw_adapter_errors_total",
    "Adapter operations that failed and returned an empty result",
    ["sport", "operation"],
)
AGENT_RUNS = Counter(
    "sw_agent_runs_total",
    "Scores agent cycles",
    ["sport", "mode"],
)
AGENT_ITEMS = Counter(
    "sw_agent_items_total",
    "Games handled by the scores agent, by outcome",
    ["sport", "outcome"],
)
BROADCAST_EVENTS = Counter(
    "sw_broadcast_events_total",
    "Events handed to the broadcaster",
    ["type"],
)
DEDUP_DECISIONS = Counter(
    "sw_dedup_decisions_total",
    "Deduplicator verdicts",
    ["verdict"],
)
JOB_RUNS = Counter(
    "sw_job_runs_total",
    "Scheduled job executions",
    ["job", "outcome"],
)
WS_MESSAGES = Counter(
    "sw_ws_messages_total",
    "Total WebSocket messages",
    ["direction"],
)

# ── Histograms ──────────────────────────────────────────────────────────
FETCH_LATENCY = Histogram(
    "sw_fetch_latency_seconds",
    "Scraper request latency in seconds",
    ["host"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
AGENT_CYCLE = Histogram(
    "sw_agent_cycle_seconds",
    "Duration of one scores agent cycle",
    ["sport", "mode"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
WS_CONNECTIONS = Gauge(
    "sw_ws_connections_active",
    "Currently active WebSocket connections",
)
WS_SUBSCRIPTIONS = Gauge(
    "sw_ws_subscriptions_active",
    "Currently active WebSocket subscription keys",
)
DEDUP_RECORDS = Gauge(
    "sw_dedup_records",
    "Signatures held in the rolling dedup window",
)
SCHEDULED_JOBS = Gauge(
    "sw_scheduled_jobs",
    "Jobs currently registered with the scheduler",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port_for_role
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)

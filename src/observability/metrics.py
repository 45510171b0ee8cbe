"""Prometheus metrics for ingestion, engagement, and monitoring.

The API serves these on /metrics; standalone jobs (poller, monitor) can
start a dedicated exporter with ensure_metrics_exporter().
"""

from __future__ import annotations

import os
import threading
from typing import Final

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from src.config.logging_config import get_logger

logger = get_logger(__name__)

MESSAGES_INGESTED_TOTAL: Final[Counter] = Counter(
    "dealshub_messages_ingested_total",
    "Deal messages accepted by ingestion",
    labelnames=("source", "outcome"),
)

ENGAGEMENT_EVENTS_TOTAL: Final[Counter] = Counter(
    "dealshub_engagement_events_total",
    "Engagement events recorded",
    labelnames=("action",),
)

LISTING_CACHE_EVENTS_TOTAL: Final[Counter] = Counter(
    "dealshub_listing_cache_events_total",
    "Listing cache lookups",
    labelnames=("result",),
)

HEALTH_SCORE: Final[Gauge] = Gauge(
    "dealshub_health_score",
    "Latest integration health score (0-100)",
)

HEALTH_ALERTS_TOTAL: Final[Counter] = Counter(
    "dealshub_health_alerts_total",
    "Health alert emails sent",
)

REQUEST_DURATION_SECONDS: Final[Histogram] = Histogram(
    "dealshub_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=("route",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_DEFAULT_METRICS_PORT: Final[int] = 9000
_METRICS_PORT_ENV: Final[str] = "METRICS_PORT"


def _resolve_metrics_port() -> int:
    port_raw = os.getenv(_METRICS_PORT_ENV)
    try:
        return int(port_raw) if port_raw else _DEFAULT_METRICS_PORT
    except ValueError:
        logger.warning("invalid_metrics_port", port=port_raw)
        return _DEFAULT_METRICS_PORT


def ensure_metrics_exporter() -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        port = _resolve_metrics_port()
        try:
            start_http_server(port)
        except OSError as exc:
            logger.error("metrics_exporter_start_failed", port=port, error=str(exc))
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "ENGAGEMENT_EVENTS_TOTAL",
    "HEALTH_ALERTS_TOTAL",
    "HEALTH_SCORE",
    "LISTING_CACHE_EVENTS_TOTAL",
    "MESSAGES_INGESTED_TOTAL",
    "REQUEST_DURATION_SECONDS",
    "ensure_metrics_exporter",
]

"""Prometheus metrics for SupportBot crawls and chat resolution."""

import logging

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Dedicated registry, served on /metrics.
supportbot_registry = CollectorRegistry()

pages_fetched = Counter(
    'supportbot_crawl_pages_total',
    'Pages processed by the crawl orchestrator',
    ['outcome'],
    registry=supportbot_registry
)

crawls_finished = Counter(
    'supportbot_crawls_total',
    'Crawl jobs by mode and terminal outcome',
    ['mode', 'outcome'],
    registry=supportbot_registry
)

crawl_duration = Histogram(
    'supportbot_crawl_duration_seconds',
    'Crawl duration in seconds',
    ['mode'],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=supportbot_registry
)

generation_calls = Counter(
    'supportbot_generation_calls_total',
    'Calls to the text-generation service',
    ['purpose', 'status'],
    registry=supportbot_registry
)

chat_resolutions = Counter(
    'supportbot_chat_resolutions_total',
    'Chat replies by how they were resolved',
    ['source'],
    registry=supportbot_registry
)

errors_total = Counter(
    'supportbot_errors_total',
    'Errors by type and component',
    ['error_type', 'component'],
    registry=supportbot_registry
)


def record_page(outcome: str) -> None:
    pages_fetched.labels(outcome=outcome).inc()


def record_crawl(mode: str, outcome: str, duration_seconds: float) -> None:
    crawls_finished.labels(mode=mode, outcome=outcome).inc()
    crawl_duration.labels(mode=mode).observe(duration_seconds)


def record_generation(purpose: str, status: str) -> None:
    generation_calls.labels(purpose=purpose, status=status).inc()


def record_resolution(source: str) -> None:
    chat_resolutions.labels(source=source).inc()


def record_error(error_type: str, component: str) -> None:
    errors_total.labels(error_type=error_type, component=component).inc()


def render_metrics() -> tuple:
    """Return the exposition payload and its content type."""
    return generate_latest(supportbot_registry), CONTENT_TYPE_LATEST

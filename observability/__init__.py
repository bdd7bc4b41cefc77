"""Observability package for SupportBot."""

from .logging import (
    setup_logging,
    get_logger,
    get_structured_logger,
    StructuredLogger,
    JSONFormatter,
    ColoredFormatter
)
from .metrics import (
    record_page,
    record_crawl,
    record_generation,
    record_resolution,
    record_error,
    render_metrics,
    supportbot_registry
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'JSONFormatter',
    'ColoredFormatter',
    'record_page',
    'record_crawl',
    'record_generation',
    'record_resolution',
    'record_error',
    'render_metrics',
    'supportbot_registry'
]

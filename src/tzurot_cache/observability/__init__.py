"""Observability for tzurot-cache: structured logging and Prometheus metrics."""

from tzurot_cache.observability.logging import LogContext, configure_logging, get_logger
from tzurot_cache.observability.metrics import get_metrics

__all__ = [
    "LogContext",
    "configure_logging",
    "get_logger",
    "get_metrics",
]

"""Prometheus metrics for resolver caches and invalidation channels.

Usage:
    from tzurot_cache.observability.metrics import record_cache_hit

    record_cache_hit("config-cascade")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, generate_latest

from tzurot_cache.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # Resolver caches
    resolver_cache_hits_total: Any = None
    resolver_cache_misses_total: Any = None
    resolver_cache_evictions_total: Any = None
    resolver_tier_failures_total: Any = None

    # Invalidation channels
    invalidation_published_total: Any = None
    invalidation_received_total: Any = None
    invalidation_rejected_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.resolver_cache_hits_total = Counter(
            "tzurot_resolver_cache_hits_total",
            "Resolver cache hits",
            ["resolver"],
        )
        self.resolver_cache_misses_total = Counter(
            "tzurot_resolver_cache_misses_total",
            "Resolver cache misses",
            ["resolver"],
        )
        self.resolver_cache_evictions_total = Counter(
            "tzurot_resolver_cache_evictions_total",
            "Resolver cache entries removed by the background sweep",
            ["resolver"],
        )
        self.resolver_tier_failures_total = Counter(
            "tzurot_resolver_tier_failures_total",
            "Tier fetches that failed or returned an invalid payload",
            ["resolver", "tier"],
        )

        self.invalidation_published_total = Counter(
            "tzurot_invalidation_events_published_total",
            "Invalidation events published",
            ["channel"],
        )
        self.invalidation_received_total = Counter(
            "tzurot_invalidation_events_received_total",
            "Invalidation events received and delivered to callbacks",
            ["channel"],
        )
        self.invalidation_rejected_total = Counter(
            "tzurot_invalidation_events_rejected_total",
            "Invalidation messages dropped as malformed",
            ["channel"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_hit(resolver: str) -> None:
    """Record a resolver cache hit."""
    metrics = get_metrics()
    if metrics.resolver_cache_hits_total:
        metrics.resolver_cache_hits_total.labels(resolver=resolver).inc()


def record_cache_miss(resolver: str) -> None:
    """Record a resolver cache miss."""
    metrics = get_metrics()
    if metrics.resolver_cache_misses_total:
        metrics.resolver_cache_misses_total.labels(resolver=resolver).inc()


def record_cache_evictions(resolver: str, count: int) -> None:
    """Record entries removed by an expiry sweep."""
    metrics = get_metrics()
    if metrics.resolver_cache_evictions_total and count:
        metrics.resolver_cache_evictions_total.labels(resolver=resolver).inc(count)


def record_tier_failure(resolver: str, tier: str) -> None:
    """Record a tier that contributed nothing because of an error."""
    metrics = get_metrics()
    if metrics.resolver_tier_failures_total:
        metrics.resolver_tier_failures_total.labels(resolver=resolver, tier=tier).inc()


def record_invalidation_published(channel: str) -> None:
    """Record a published invalidation event."""
    metrics = get_metrics()
    if metrics.invalidation_published_total:
        metrics.invalidation_published_total.labels(channel=channel).inc()


def record_invalidation_received(channel: str) -> None:
    """Record a received, valid invalidation event."""
    metrics = get_metrics()
    if metrics.invalidation_received_total:
        metrics.invalidation_received_total.labels(channel=channel).inc()


def record_invalidation_rejected(channel: str) -> None:
    """Record a dropped invalidation message."""
    metrics = get_metrics()
    if metrics.invalidation_rejected_total:
        metrics.invalidation_rejected_total.labels(channel=channel).inc()

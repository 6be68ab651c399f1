#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics collection with:
- Publish counters by destination kind and outcome
- Session pool borrow, exhaustion and invalidation counters
- Pool occupancy gauges
- Delivery, drop and drain counters
- Subscription lifecycle counters
- Error rates by type

Architectural Decision: prometheus-client for industry-standard metrics

Author: Senior Solution Architect
Date: 2025-12-05
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from pubsub_gateway.core.config.settings import get_settings
from pubsub_gateway.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Publish metrics
PUBLISH_COUNT = Counter(
    'gateway_publish_total',
    'Total publish attempts',
    ['kind', 'message_type', 'status']
)

PUBLISH_EVENTS = Counter(
    'gateway_publish_events_total',
    'Asynchronous publish acknowledgements and rejections',
    ['result']
)

# Pool metrics
POOL_BORROWS = Counter(
    'gateway_pool_borrows_total',
    'Total session borrow attempts',
    ['pool', 'result']  # ok, exhausted, closed
)

POOL_INVALIDATIONS = Counter(
    'gateway_pool_invalidations_total',
    'Sessions destroyed instead of being re-idled',
    ['pool', 'reason']
)

POOL_SESSIONS = Gauge(
    'gateway_pool_sessions',
    'Sessions held by a pool',
    ['pool', 'state']  # active, idle
)

# Delivery metrics
DELIVERIES = Counter(
    'gateway_deliveries_total',
    'Inbound messages appended to the delivery cache',
    ['kind', 'message_type']
)

DROPPED_MESSAGES = Counter(
    'gateway_dropped_messages_total',
    'Inbound messages dropped by the message handler',
    ['kind', 'reason']
)

DRAINED_MESSAGES = Counter(
    'gateway_drained_messages_total',
    'Messages removed from the delivery cache by drain',
    ['kind']
)

# Subscription metrics
SUBSCRIPTION_EVENTS = Counter(
    'gateway_subscription_events_total',
    'Subscription lifecycle events',
    ['kind', 'event']  # created, closed, reconnected, failed
)

# Error metrics
ERRORS = Counter(
    'gateway_errors_total',
    'Total errors by type',
    ['error_type', 'stage']
)

# App info
APP_INFO = Info(
    'gateway_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_publish("topic", "TEXT_MESSAGE", "success")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Publish Metrics
    # =========================================================================

    def record_publish(self, kind: str, message_type: str, status: str) -> None:
        """Record a publish attempt outcome."""
        PUBLISH_COUNT.labels(kind=kind, message_type=message_type, status=status).inc()

    def record_publish_event(self, result: str) -> None:
        """Record an asynchronous publish acknowledgement or rejection."""
        PUBLISH_EVENTS.labels(result=result).inc()

    # =========================================================================
    # Pool Metrics
    # =========================================================================

    def record_pool_borrow(self, pool: str, result: str) -> None:
        """Record a borrow attempt."""
        POOL_BORROWS.labels(pool=pool, result=result).inc()

    def record_pool_invalidation(self, pool: str, reason: str) -> None:
        """Record a destroyed session."""
        POOL_INVALIDATIONS.labels(pool=pool, reason=reason).inc()

    def set_pool_sessions(self, pool: str, active: int, idle: int) -> None:
        """Set pool occupancy."""
        POOL_SESSIONS.labels(pool=pool, state="active").set(active)
        POOL_SESSIONS.labels(pool=pool, state="idle").set(idle)

    # =========================================================================
    # Delivery Metrics
    # =========================================================================

    def record_delivery(self, kind: str, message_type: str) -> None:
        """Record a cached delivery."""
        DELIVERIES.labels(kind=kind, message_type=message_type).inc()

    def record_dropped_message(self, kind: str, reason: str) -> None:
        """Record a dropped inbound message."""
        DROPPED_MESSAGES.labels(kind=kind, reason=reason).inc()

    def record_drain(self, kind: str, count: int) -> None:
        """Record drained messages."""
        DRAINED_MESSAGES.labels(kind=kind).inc(count)

    # =========================================================================
    # Subscription Metrics
    # =========================================================================

    def record_subscription_event(self, kind: str, event: str) -> None:
        """Record a subscription lifecycle event."""
        SUBSCRIPTION_EVENTS.labels(kind=kind, event=event).inc()

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, stage: str) -> None:
        """Record error."""
        ERRORS.labels(error_type=error_type, stage=stage).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics

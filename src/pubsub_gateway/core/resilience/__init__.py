"""Resilience primitives: the bounded session pool."""

from pubsub_gateway.core.resilience.session_pool import (
    PooledObject,
    PooledObjectFactory,
    PoolStats,
    SessionPool,
)

__all__ = ["PooledObject", "PooledObjectFactory", "PoolStats", "SessionPool"]

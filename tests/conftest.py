"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
from unittest.mock import MagicMock

import pytest

from tests.test_fixtures import InMemoryBroker


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings(tmp_path):
    """
    Real Settings with small pools and no background threads.

    Eviction and the supervisor are disabled so tests drive them explicitly.
    """
    from pubsub_gateway.core.config.settings import Settings

    return Settings(
        BROKER_HOST="redis://localhost:6379",
        BROKER_TENANT="test",
        POOL_MAX_TOTAL=3,
        POOL_MIN_IDLE=0,
        POOL_MAX_WAIT=0.2,
        POOL_EVICTION_INTERVAL=0,
        SUBSCRIPTION_SUPERVISOR_ENABLED=False,
        SUBSCRIPTION_RECONNECT_ATTEMPTS=2,
        SUBSCRIPTION_RECONNECT_BACKOFF=0,
        SUBSCRIPTION_RECONNECT_BACKOFF_CAP=0,
        RECEIVED_FILES_DIRECTORY=str(tmp_path / "received_files"),
        DEFAULT_TOPIC="default/topic",
        DEFAULT_QUEUE="default-queue",
    )


@pytest.fixture
def transport_config(test_settings):
    from pubsub_gateway.core.config.transport import build_transport_config

    return build_transport_config(test_settings)


@pytest.fixture
def mock_metrics():
    """MetricsCollector stand-in that records calls without touching the registry."""
    from pubsub_gateway.infrastructure.monitoring.metrics_collector import MetricsCollector

    return MagicMock(spec=MetricsCollector)


# ============================================================================
# Environment-Based Integration Toggles
# ============================================================================


@pytest.fixture(scope="session")
def use_real_redis():
    """Check if real Redis should be used for integration tests."""
    return os.getenv("USE_REAL_REDIS", "0").lower() in ("1", "true", "yes")


# ============================================================================
# Broker Fixtures
# ============================================================================


@pytest.fixture
def broker():
    """In-memory broker with synchronous delivery."""
    return InMemoryBroker()


@pytest.fixture
def session_factory(broker, transport_config):
    from pubsub_gateway.infrastructure.broker.session_factory import BrokerSessionFactory

    return BrokerSessionFactory(broker, transport_config)


@pytest.fixture
def session_pool(session_factory, mock_metrics):
    """Producer-style pool over the in-memory broker; closed after the test."""
    from pubsub_gateway.core.resilience.session_pool import SessionPool

    pool = SessionPool(
        session_factory,
        name="test",
        max_total=2,
        min_idle=0,
        max_wait=0.2,
        eviction_interval=0,
        metrics=mock_metrics,
    )
    yield pool
    pool.close()


@pytest.fixture
def gateway(test_settings, broker):
    """Fully wired gateway over the in-memory broker; shut down after the test."""
    from pubsub_gateway.application.services.gateway import BrokerGateway
    from pubsub_gateway.infrastructure.storage.file_store import LocalFileStore

    gw = BrokerGateway.from_settings(test_settings, transport=broker, file_store=LocalFileStore())
    gw.start()
    yield gw
    gw.shutdown()

"""
Broker Gateway Service - Educational Documentation
==================================================

WHAT IS THIS SERVICE?
---------------------
BrokerGateway is the single entry point the HTTP routes talk to. It owns:

- a PRODUCER pool: short borrow-use-return sessions for publishing
- a CONSUMER pool: dedicated sessions handed to subscriptions and never
  returned while the subscription lives
- the publisher, the subscription registry and the delivery cache

WHY TWO POOLS?
--------------
Subscriptions hold their sessions for as long as they live. Drawing them
from the producer pool would let a handful of subscriptions starve every
publisher. Separate pools keep the publish path's capacity independent.

LIFECYCLE
---------
    gateway = BrokerGateway.from_settings(get_settings())
    gateway.start()      # pool warm-up, eviction threads, supervisor
    ...
    gateway.shutdown()   # subscriptions first, then both pools

Author: System Architect
Date: 2025-12-11
"""

from typing import Any

from pubsub_gateway.application.services.delivery_cache import DeliveryCache
from pubsub_gateway.application.services.message_handler import MessageHandler
from pubsub_gateway.application.services.publisher import MessagePublisher
from pubsub_gateway.application.services.subscription_registry import (
    Subscription,
    SubscriptionRegistry,
)
from pubsub_gateway.core.config.constants import DestinationKind
from pubsub_gateway.core.config.settings import Settings
from pubsub_gateway.core.config.transport import TransportConfig, build_transport_config
from pubsub_gateway.core.interfaces.storage import FileStore
from pubsub_gateway.core.interfaces.transport import BrokerMessage, BrokerTransport
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.core.resilience.session_pool import SessionPool
from pubsub_gateway.infrastructure.broker.redis_transport import RedisTransport
from pubsub_gateway.infrastructure.broker.session_factory import BrokerSessionFactory
from pubsub_gateway.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from pubsub_gateway.infrastructure.storage.file_store import LocalFileStore

logger = get_logger(__name__)


class BrokerGateway:
    """Facade over pools, publisher, subscriptions and the delivery cache."""

    def __init__(
        self,
        producer_pool: SessionPool[Any],
        consumer_pool: SessionPool[Any],
        publisher: MessagePublisher,
        registry: SubscriptionRegistry,
        cache: DeliveryCache,
        default_topic: str = "default/topic",
        default_queue: str = "default-queue",
        supervisor_enabled: bool = True,
        metrics: MetricsCollector | None = None,
    ):
        self.producer_pool = producer_pool
        self.consumer_pool = consumer_pool
        self.publisher = publisher
        self.registry = registry
        self.cache = cache
        self.default_topic = default_topic
        self.default_queue = default_queue
        self._supervisor_enabled = supervisor_enabled
        self._metrics = metrics or get_metrics_collector()
        self._started = False
        self._shut_down = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: BrokerTransport | None = None,
        file_store: FileStore | None = None,
        config: TransportConfig | None = None,
    ) -> "BrokerGateway":
        """
        Wire a gateway from application settings.

        STAGE-0.5: Gateway assembly

        Args:
            settings: Application settings
            transport: Broker transport (defaults to RedisTransport)
            file_store: Attachment storage (defaults to LocalFileStore)
            config: Transport configuration (defaults to one built from settings)
        """
        transport = transport or RedisTransport()
        config = config or build_transport_config(settings)
        metrics = get_metrics_collector()
        pool_settings = settings.pool
        sub_settings = settings.subscription

        def make_pool(name: str) -> SessionPool[Any]:
            return SessionPool(
                BrokerSessionFactory(transport, config),
                name=name,
                max_total=pool_settings.POOL_MAX_TOTAL,
                min_idle=pool_settings.POOL_MIN_IDLE,
                max_wait=pool_settings.POOL_MAX_WAIT,
                eviction_interval=pool_settings.POOL_EVICTION_INTERVAL,
                test_on_borrow=pool_settings.POOL_TEST_ON_BORROW,
                test_while_idle=pool_settings.POOL_TEST_WHILE_IDLE,
                metrics=metrics,
            )

        producer_pool = make_pool("producer")
        consumer_pool = make_pool("consumer")
        cache = DeliveryCache()
        handler = MessageHandler(
            cache,
            file_store or LocalFileStore(),
            settings.storage.RECEIVED_FILES_DIRECTORY,
            metrics=metrics,
        )
        registry = SubscriptionRegistry(
            consumer_pool,
            transport,
            handler,
            supervisor_interval=sub_settings.SUBSCRIPTION_SUPERVISOR_INTERVAL,
            reconnect_attempts=sub_settings.SUBSCRIPTION_RECONNECT_ATTEMPTS,
            reconnect_backoff=sub_settings.SUBSCRIPTION_RECONNECT_BACKOFF,
            reconnect_backoff_cap=sub_settings.SUBSCRIPTION_RECONNECT_BACKOFF_CAP,
            metrics=metrics,
        )

        logger.info(
            "Broker gateway assembled",
            stage="0.5",
            host=config.url,
            tenant=config.tenant,
            secure=config.secure,
            max_total=pool_settings.POOL_MAX_TOTAL
        )

        return cls(
            producer_pool=producer_pool,
            consumer_pool=consumer_pool,
            publisher=MessagePublisher(producer_pool, transport, metrics=metrics),
            registry=registry,
            cache=cache,
            default_topic=settings.broker.DEFAULT_TOPIC,
            default_queue=settings.broker.DEFAULT_QUEUE,
            supervisor_enabled=sub_settings.SUBSCRIPTION_SUPERVISOR_ENABLED,
            metrics=metrics,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Warm up both pools and start the reconnect supervisor."""
        if self._started:
            return
        self.producer_pool.start()
        self.consumer_pool.start()
        if self._supervisor_enabled:
            self.registry.start_supervisor()
        self._started = True
        logger.info("Broker gateway started", stage="0.0")

    def shutdown(self) -> None:
        """
        Release everything the gateway holds.

        Subscriptions are torn down before the pools close so no dedicated
        session outlives its pool. Idempotent.
        """
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Broker gateway shutting down", stage="0.9")
        self.registry.shutdown()
        self.producer_pool.close()
        self.consumer_pool.close()
        logger.info("Broker gateway shut down", stage="0.9")

    # =========================================================================
    # Operations
    # =========================================================================

    def resolve_name(self, name: str | None, kind: DestinationKind) -> str:
        """Return the destination name, or the configured default when empty."""
        name = (name or "").strip().strip("/")
        if name:
            return name
        return self.default_topic if kind is DestinationKind.TOPIC else self.default_queue

    def send_text(self, destination: str, kind: DestinationKind, body: str) -> BrokerMessage:
        return self.publisher.send_text(destination, kind, body)

    def send_file(self, destination: str, kind: DestinationKind, filename: str, data: bytes) -> BrokerMessage:
        return self.publisher.send_file(destination, kind, filename, data)

    def subscribe_topic(self, name: str) -> Subscription:
        return self.registry.subscribe_topic(name)

    def listen_queue(self, name: str) -> Subscription:
        return self.registry.listen_queue(name)

    def unsubscribe(self, subscription_id: str) -> Subscription:
        return self.registry.unsubscribe(subscription_id)

    def drain_messages(self, destination: str, kind: DestinationKind) -> list[str]:
        """
        Remove and return every message cached for the destination.

        STAGE-DLV.2: Drain
        """
        messages = self.cache.drain(kind, destination)
        if messages:
            self._metrics.record_drain(kind.value, len(messages))
        logger.debug("Messages drained", stage="DLV.2", kind=kind.value, destination=destination, count=len(messages))
        return messages

    def health(self) -> dict[str, Any]:
        """Pool occupancy and subscription states."""
        subscriptions = self.registry.list_subscriptions()
        producer = self.producer_pool.stats()
        consumer = self.consumer_pool.stats()
        degraded = producer.closed or consumer.closed or any(
            s["state"] != "active" for s in subscriptions
        )
        return {
            "status": "degraded" if degraded else "healthy",
            "pools": {"producer": producer.to_dict(), "consumer": consumer.to_dict()},
            "subscriptions": subscriptions,
        }

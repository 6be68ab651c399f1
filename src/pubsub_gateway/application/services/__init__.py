"""
Application Services Package
=============================

Business logic used by the API routes:

- **gateway.py**: BrokerGateway facade
- **publisher.py**: borrow-use-return publish path
- **subscription_registry.py**: dedicated-session subscriptions and the reconnect supervisor
- **delivery_cache.py**: per-destination FIFO bridging push delivery to pull retrieval
- **message_handler.py**: shared inbound delivery routine
"""

from pubsub_gateway.application.services.delivery_cache import DeliveryCache
from pubsub_gateway.application.services.gateway import BrokerGateway
from pubsub_gateway.application.services.message_handler import MessageHandler
from pubsub_gateway.application.services.publisher import MessagePublisher, PublishEventLogger
from pubsub_gateway.application.services.subscription_registry import (
    Subscription,
    SubscriptionRegistry,
)

__all__ = [
    "BrokerGateway",
    "DeliveryCache",
    "MessageHandler",
    "MessagePublisher",
    "PublishEventLogger",
    "Subscription",
    "SubscriptionRegistry",
]

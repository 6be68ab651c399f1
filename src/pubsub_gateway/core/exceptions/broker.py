"""
Broker Exceptions

All exceptions related to broker sessions, publishing and subscriptions.

Author: System Architect
Date: 2025-12-08
"""

from pubsub_gateway.core.exceptions.base import GatewayBaseError


class BrokerError(GatewayBaseError):
    """Base exception for broker errors."""
    pass


class BrokerConnectionError(BrokerError):
    """
    Raised when the broker is unreachable or rejects the client.

    Surfaced to callers of publish and subscribe. The session involved is
    invalidated before this propagates.
    """
    pass


class SessionInvalidError(BrokerError):
    """
    Raised when a session is found closed while returning it to the pool.

    Internal: the pool reacts by destroying the session instead of re-idling it.
    """
    pass


class DeliveryCallbackError(BrokerError):
    """
    Asynchronous publish rejection reported by the broker.

    Only logged by the publish event handler. Never raised to the publisher.
    """
    pass


class SubscriptionError(BrokerError):
    """Raised for unknown subscriptions or subscriptions that cannot be re-created."""
    pass


class SubscriptionNotFoundError(SubscriptionError):
    """Raised when an unsubscribe names an id the registry does not track."""
    pass

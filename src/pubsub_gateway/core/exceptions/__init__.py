"""
Exception Module

Structured exception hierarchy for the pub/sub gateway.

Module Structure:
-----------------
- **base.py**: GatewayBaseError base class + ConfigurationError
- **broker.py**: Broker session, publish and subscription exceptions
- **connection_pool.py**: Session pool exceptions
- **delivery.py**: Inbound delivery exceptions

Usage:
------
```python
from pubsub_gateway.core.exceptions import BrokerConnectionError, PoolExhaustedError
```

Author: System Architect
Date: 2025-12-08
"""

# Base exception
from pubsub_gateway.core.exceptions.base import ConfigurationError, GatewayBaseError

# Broker exceptions
from pubsub_gateway.core.exceptions.broker import (
    BrokerConnectionError,
    BrokerError,
    DeliveryCallbackError,
    SessionInvalidError,
    SubscriptionError,
    SubscriptionNotFoundError,
)

# Connection Pool exceptions
from pubsub_gateway.core.exceptions.connection_pool import (
    ConnectionPoolError,
    PoolClosedError,
    PoolExhaustedError,
)

# Delivery exceptions
from pubsub_gateway.core.exceptions.delivery import AttachmentHandlingError

__all__ = [
    # Base
    "GatewayBaseError",
    "ConfigurationError",
    # Broker
    "BrokerError",
    "BrokerConnectionError",
    "SessionInvalidError",
    "DeliveryCallbackError",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    # Connection Pool
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    # Delivery
    "AttachmentHandlingError",
]

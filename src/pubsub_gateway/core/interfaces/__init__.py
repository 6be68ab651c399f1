"""
Core Interfaces Module

Protocols for the collaborators the gateway depends on:

- **transport.py**: BrokerTransport, SubscriptionHandle, PublishEventHandler,
  plus the BrokerMessage and Destination types
- **storage.py**: FileStore for received attachments

Interfaces follow the Protocol pattern (PEP 544) with @runtime_checkable so
tests can substitute in-memory implementations.

Author: System Architect
Date: 2025-12-08
"""

from pubsub_gateway.core.interfaces.storage import FileStore
from pubsub_gateway.core.interfaces.transport import (
    BrokerMessage,
    BrokerTransport,
    Destination,
    ExceptionListener,
    MessageListener,
    PublishEventHandler,
    SubscriptionHandle,
)

__all__ = [
    # Transport
    "BrokerMessage",
    "BrokerTransport",
    "Destination",
    "ExceptionListener",
    "MessageListener",
    "PublishEventHandler",
    "SubscriptionHandle",
    # Storage
    "FileStore",
]

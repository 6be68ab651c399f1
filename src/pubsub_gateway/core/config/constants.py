"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the pub/sub gateway.

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Destinations and Subscriptions
# ============================================================================


class DestinationKind(str, Enum):
    """Broker destination kinds: fan-out topics and point-to-point queues."""

    TOPIC = "topic"
    QUEUE = "queue"


class SubscriptionState(str, Enum):
    """
    Subscription lifecycle states.

    ACTIVE: consumer or flow running
    RECONNECTING: defunct handle being re-created by the supervisor
    FAILED: re-creation exhausted its attempts
    CLOSED: torn down by unsubscribe or shutdown
    """

    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    CLOSED = "closed"


class AckMode(str, Enum):
    """Flow acknowledgement modes."""

    AUTO = "auto"
    CLIENT = "client"


class PooledObjectState(str, Enum):
    """Pooled session states."""

    IDLE = "idle"
    ACTIVE = "active"
    INVALID = "invalid"


# ============================================================================
# Message Properties
# ============================================================================

PROPERTY_FILE_NAME = "FILE_NAME"
PROPERTY_FILE_SIZE = "FILE_SIZE"

MESSAGE_TYPE_TEXT = "TEXT_MESSAGE"
MESSAGE_TYPE_FILE = "FILE_MESSAGE"

MESSAGE_ID_PREFIX_TEXT = "APP"
MESSAGE_ID_PREFIX_FILE = "FILE"

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_RETRY_AFTER = "Retry-After"

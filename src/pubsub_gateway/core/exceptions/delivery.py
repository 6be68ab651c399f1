"""
Delivery Exceptions

Errors raised while turning an inbound broker message into a cache entry.

Author: System Architect
Date: 2025-12-08
"""

from pubsub_gateway.core.exceptions.base import GatewayBaseError


class AttachmentHandlingError(GatewayBaseError):
    """
    Raised when a received attachment cannot be persisted.

    Logged by the message handler; the message is dropped. Queue messages are
    still acknowledged.
    """
    pass

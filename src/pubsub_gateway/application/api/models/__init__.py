"""
API Models Package
==================

Pydantic models for API responses.

ORGANIZATION:
-------------
- messaging.py: publish, subscription and health response models
"""

from pubsub_gateway.application.api.models.messaging import (
    ErrorResponse,
    HealthResponse,
    PublishResponse,
    SubscriptionResponse,
    UnsubscribeResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "PublishResponse",
    "SubscriptionResponse",
    "UnsubscribeResponse",
]

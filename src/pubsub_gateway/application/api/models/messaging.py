"""
Messaging API Response Models - Educational Documentation
==========================================================

WHY RESPONSE MODELS FOR A THIN GATEWAY?
---------------------------------------
The routes only hand work to BrokerGateway, but their answers are still a
contract: clients read the destination that was actually used (after
default-name substitution) and the ids they need for follow-up calls.
Declaring that contract with Pydantic gives:

1. **Validation**: A route cannot return a half-filled answer
2. **Documentation**: /docs shows every field with its description
3. **Stability**: Adding an optional field never breaks existing clients

Drain results are plain JSON lists of strings and need no model.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pubsub_gateway.core.config.constants import DestinationKind, SubscriptionState


class PublishResponse(BaseModel):
    """Answer to a text or file publish."""

    message: str = Field(..., description="Human readable outcome")
    destination: str = Field(..., description="Destination name after default substitution")
    kind: DestinationKind = Field(..., description="topic or queue")
    message_id: str = Field(..., description="Application message id (APP-<ms> or FILE-<ms>)")
    message_type: str = Field(..., description="TEXT_MESSAGE or FILE_MESSAGE")
    file_name: str | None = Field(default=None, description="Uploaded file name for file publishes")
    size: int | None = Field(default=None, ge=0, description="Attachment size in bytes")


class SubscriptionResponse(BaseModel):
    """Answer to a topic subscribe or queue listen."""

    message: str = Field(..., description="Human readable outcome")
    subscription_id: str = Field(..., description="Id to pass to DELETE /subscriptions/{id}")
    destination: str = Field(..., description="Destination name after default substitution")
    kind: DestinationKind = Field(..., description="topic or queue")
    state: SubscriptionState = Field(..., description="Subscription state")
    created_at: datetime = Field(..., description="When the subscription was created")


class UnsubscribeResponse(BaseModel):
    """Answer to an unsubscribe."""

    message: str
    subscription_id: str
    state: SubscriptionState


class HealthResponse(BaseModel):
    """Pool occupancy and subscription states."""

    status: str = Field(..., description="healthy or degraded")
    pools: dict[str, dict[str, Any]] = Field(..., description="Producer and consumer pool statistics")
    subscriptions: list[dict[str, Any]] = Field(default_factory=list, description="Tracked subscriptions")


class ErrorResponse(BaseModel):
    """Body of every mapped error response."""

    error: str
    message: str

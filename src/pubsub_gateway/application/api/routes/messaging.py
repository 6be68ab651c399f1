"""
Messaging Routes

Publish, subscribe, listen, drain and unsubscribe endpoints over the
broker gateway.

Every destination route accepts an optional trailing name, so both
`POST /topic` and `POST /topic/sensor/temperature` reach the same handler.
An empty name falls back to the configured default destination.

Gateway calls block (pool borrow, network round trips), so handlers run
them in the threadpool and keep the event loop free.

File routes are registered before the catch-all `{name:path}` routes so
`/topic/file` is never read as a topic called "file".

STAGE-HTTP: Request handling
----------------------------
HTTP.1: Publish text
HTTP.2: Publish file
HTTP.3: Subscribe / listen
HTTP.4: Drain
HTTP.5: Unsubscribe

Author: System Architect
Date: 2025-12-11
"""

from fastapi import APIRouter, File, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from pubsub_gateway.application.api.dependencies import GatewayDep
from pubsub_gateway.application.api.models.messaging import (
    ErrorResponse,
    PublishResponse,
    SubscriptionResponse,
    UnsubscribeResponse,
)
from pubsub_gateway.application.services.gateway import BrokerGateway
from pubsub_gateway.application.services.subscription_registry import Subscription
from pubsub_gateway.core.config.constants import DestinationKind
from pubsub_gateway.core.interfaces.transport import BrokerMessage
from pubsub_gateway.core.logging.logger import get_logger

logger = get_logger(__name__)

BROKER_ERRORS = {
    500: {"model": ErrorResponse, "description": "Broker messaging error"},
    503: {"model": ErrorResponse, "description": "Session pool exhausted; retry after the Retry-After delay"},
}
FILE_ERRORS = {400: {"model": ErrorResponse, "description": "Upload could not be read"}}

router = APIRouter(tags=["Messaging"], responses=BROKER_ERRORS)


# ============================================================================
# HELPERS
# ============================================================================


async def _publish_text(
    gateway: BrokerGateway, request: Request, name: str, kind: DestinationKind
) -> PublishResponse:
    destination = gateway.resolve_name(name, kind)
    body = (await request.body()).decode("utf-8", errors="replace")
    logger.info(
        "Publish text request",
        stage="HTTP.1",
        kind=kind.value,
        destination=destination,
        length=len(body)
    )

    message = await run_in_threadpool(gateway.send_text, destination, kind, body)
    return _publish_response(message, destination, kind, f"Message sent to {kind.value}: {destination}")


async def _publish_file(
    gateway: BrokerGateway, upload: UploadFile, name: str, kind: DestinationKind
) -> PublishResponse:
    destination = gateway.resolve_name(name, kind)
    data = await upload.read()
    filename = upload.filename or "upload.bin"
    logger.info(
        "Publish file request",
        stage="HTTP.2",
        kind=kind.value,
        destination=destination,
        file_name=filename,
        size=len(data)
    )

    message = await run_in_threadpool(gateway.send_file, destination, kind, filename, data)
    response = _publish_response(message, destination, kind, f"File sent to {kind.value}: {destination}")
    response.file_name = filename
    response.size = len(data)
    return response


def _publish_response(
    message: BrokerMessage, destination: str, kind: DestinationKind, text: str
) -> PublishResponse:
    return PublishResponse(
        message=text,
        destination=destination,
        kind=kind,
        message_id=message.application_message_id,
        message_type=message.application_message_type,
    )


def _subscription_response(subscription: Subscription, text: str) -> SubscriptionResponse:
    return SubscriptionResponse(
        message=text,
        subscription_id=subscription.subscription_id,
        destination=subscription.name,
        kind=subscription.kind,
        state=subscription.state,
        created_at=subscription.created_at,
    )


async def _drain(gateway: BrokerGateway, name: str, kind: DestinationKind) -> list[str]:
    destination = gateway.resolve_name(name, kind)
    messages = await run_in_threadpool(gateway.drain_messages, destination, kind)
    logger.info(
        "Messages retrieved",
        stage="HTTP.4",
        kind=kind.value,
        destination=destination,
        count=len(messages)
    )
    return messages


# ============================================================================
# PUBLISH FILE
# ============================================================================


@router.post("/topic/file", response_model=PublishResponse, responses=FILE_ERRORS)
@router.post("/topic/file/{name:path}", response_model=PublishResponse, responses=FILE_ERRORS)
async def publish_file_to_topic(gateway: GatewayDep, file: UploadFile = File(...), name: str = ""):
    """Publish an uploaded file to a topic as an attachment."""
    return await _publish_file(gateway, file, name, DestinationKind.TOPIC)


@router.post("/queue/file", response_model=PublishResponse, responses=FILE_ERRORS)
@router.post("/queue/file/{name:path}", response_model=PublishResponse, responses=FILE_ERRORS)
async def publish_file_to_queue(gateway: GatewayDep, file: UploadFile = File(...), name: str = ""):
    """Publish an uploaded file to a queue as an attachment."""
    return await _publish_file(gateway, file, name, DestinationKind.QUEUE)


# ============================================================================
# PUBLISH TEXT
# ============================================================================


@router.post("/topic", response_model=PublishResponse)
@router.post("/topic/{name:path}", response_model=PublishResponse)
async def publish_to_topic(request: Request, gateway: GatewayDep, name: str = ""):
    """Publish the raw request body as a text message to a topic."""
    return await _publish_text(gateway, request, name, DestinationKind.TOPIC)


@router.post("/queue", response_model=PublishResponse)
@router.post("/queue/{name:path}", response_model=PublishResponse)
async def publish_to_queue(request: Request, gateway: GatewayDep, name: str = ""):
    """Publish the raw request body as a text message to a queue."""
    return await _publish_text(gateway, request, name, DestinationKind.QUEUE)


# ============================================================================
# SUBSCRIBE / LISTEN
# ============================================================================


@router.post("/subscribe/topic", response_model=SubscriptionResponse)
@router.post("/subscribe/topic/{name:path}", response_model=SubscriptionResponse)
async def subscribe_to_topic(gateway: GatewayDep, name: str = ""):
    """
    Subscribe to a topic on a dedicated session.

    Every call creates a new subscription. Two subscriptions to the same
    topic each cache their own copy of every message.
    """
    destination = gateway.resolve_name(name, DestinationKind.TOPIC)
    logger.info("Subscribe request", stage="HTTP.3", kind="topic", destination=destination)
    subscription = await run_in_threadpool(gateway.subscribe_topic, destination)
    return _subscription_response(subscription, f"Subscribed to topic: {destination}")


@router.post("/listen/queue", response_model=SubscriptionResponse)
@router.post("/listen/queue/{name:path}", response_model=SubscriptionResponse)
async def listen_to_queue(gateway: GatewayDep, name: str = ""):
    """Start a client-acknowledged flow on a queue."""
    destination = gateway.resolve_name(name, DestinationKind.QUEUE)
    logger.info("Listen request", stage="HTTP.3", kind="queue", destination=destination)
    subscription = await run_in_threadpool(gateway.listen_queue, destination)
    return _subscription_response(subscription, f"Listening on queue: {destination}")


# ============================================================================
# DRAIN
# ============================================================================


@router.get("/messages/topic", response_model=list[str])
@router.get("/messages/topic/{name:path}", response_model=list[str])
async def get_topic_messages(gateway: GatewayDep, name: str = ""):
    """Remove and return every message cached for the topic. Never fails."""
    return await _drain(gateway, name, DestinationKind.TOPIC)


@router.get("/messages/queue", response_model=list[str])
@router.get("/messages/queue/{name:path}", response_model=list[str])
async def get_queue_messages(gateway: GatewayDep, name: str = ""):
    """Remove and return every message cached for the queue. Never fails."""
    return await _drain(gateway, name, DestinationKind.QUEUE)


# ============================================================================
# UNSUBSCRIBE
# ============================================================================


@router.delete(
    "/subscriptions/{subscription_id}",
    response_model=UnsubscribeResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown subscription"}},
)
async def unsubscribe(subscription_id: str, gateway: GatewayDep):
    """Tear down one subscription and destroy its dedicated session."""
    logger.info("Unsubscribe request", stage="HTTP.5", subscription_id=subscription_id)
    subscription = await run_in_threadpool(gateway.unsubscribe, subscription_id)
    return UnsubscribeResponse(
        message=f"Subscription closed: {subscription_id}",
        subscription_id=subscription_id,
        state=subscription.state,
    )

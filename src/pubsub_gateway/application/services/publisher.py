"""
Publish Path

Borrow-use-return workflow for outbound messages. Every send borrows a
session from the producer pool, binds a producer to it and publishes.
The session goes back to the pool only when the send succeeded; on any
failure it is invalidated so a possibly broken session is never reused.

STAGE-PUB: Publishing
---------------------
PUB.1: Publish
PUB.2: Asynchronous publish events (acknowledgement / rejection)

Author: System Architect
Date: 2025-12-10
"""

from typing import Any

from pubsub_gateway.core.config.constants import DestinationKind
from pubsub_gateway.core.exceptions.broker import DeliveryCallbackError
from pubsub_gateway.core.interfaces.transport import BrokerMessage, BrokerTransport, Destination
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.core.resilience.session_pool import SessionPool
from pubsub_gateway.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


class PublishEventLogger:
    """
    Publish event handler that only records what the broker reports.

    Rejections are logged as DeliveryCallbackError and never raised back to
    the publishing thread.
    """

    def __init__(self, destination: Destination, metrics: MetricsCollector):
        self._destination = destination
        self._metrics = metrics

    def response_received(self, message_id: str | None) -> None:
        self._metrics.record_publish_event("acknowledged")
        logger.debug(
            "Publish acknowledged",
            stage="PUB.2",
            destination=str(self._destination),
            message_id=message_id
        )

    def handle_error(self, message_id: str | None, error: Exception, timestamp: int) -> None:
        callback_error = DeliveryCallbackError.from_exception(
            error,
            message=f"Publish to {self._destination} rejected",
            destination=str(self._destination),
            message_id=message_id,
            timestamp=timestamp
        )
        self._metrics.record_publish_event("rejected")
        logger.error("Publish rejected", stage="PUB.2", error=callback_error.message, details=callback_error.details)


class MessagePublisher:
    """Publishes text and file messages through a pool of producer sessions."""

    def __init__(
        self,
        pool: SessionPool[Any],
        transport: BrokerTransport,
        metrics: MetricsCollector | None = None,
    ):
        self._pool = pool
        self._transport = transport
        self._metrics = metrics or get_metrics_collector()

    def send_text(self, destination: str, kind: DestinationKind, body: str) -> BrokerMessage:
        """
        Publish a text message.

        Raises:
            BrokerConnectionError: If the broker rejected the session or the send
            PoolExhaustedError: If no producer session became available in time
        """
        message = BrokerMessage.text_message(body)
        self._publish(Destination(destination, kind), message)
        return message

    def send_file(self, destination: str, kind: DestinationKind, filename: str, data: bytes) -> BrokerMessage:
        """
        Publish a file as an attachment with FILE_NAME and FILE_SIZE properties.

        Raises:
            BrokerConnectionError: If the broker rejected the session or the send
            PoolExhaustedError: If no producer session became available in time
        """
        message = BrokerMessage.file_message(filename, data)
        self._publish(Destination(destination, kind), message)
        return message

    def _publish(self, destination: Destination, message: BrokerMessage) -> None:
        session = self._pool.borrow()
        try:
            producer = self._transport.create_producer(
                session, PublishEventLogger(destination, self._metrics)
            )
            self._transport.send(producer, message, destination)
        except Exception as e:
            self._pool.invalidate(session)
            self._metrics.record_publish(destination.kind.value, message.application_message_type, "failure")
            self._metrics.record_error(type(e).__name__, "PUB.1")
            logger.error(
                "Publish failed, session invalidated",
                stage="PUB.1",
                destination=str(destination),
                message_id=message.application_message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            raise

        self._pool.return_(session)
        self._metrics.record_publish(destination.kind.value, message.application_message_type, "success")
        logger.info(
            "Message published",
            stage="PUB.1",
            destination=str(destination),
            message_type=message.application_message_type,
            message_id=message.application_message_id
        )

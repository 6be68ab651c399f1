"""
Broker Transport Protocol

This module defines the protocol a broker client library must satisfy so the
gateway can pool its sessions, publish through it and bind subscriptions to
it, together with the message and destination types that cross that seam.

Architectural Decision: Protocol-based abstraction
- The Redis transport is the production implementation
- Tests substitute an in-memory broker with synchronous delivery
- Gateway services never import a concrete client library

Threading contract:
- ``send``, ``connect``, ``close`` and ``is_closed`` are called on caller threads
- listeners and ``on_exception`` callbacks are invoked on transport-owned threads

Author: System Architect
Date: 2025-12-08
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pubsub_gateway.core.config.constants import (
    MESSAGE_ID_PREFIX_FILE,
    MESSAGE_ID_PREFIX_TEXT,
    MESSAGE_TYPE_FILE,
    MESSAGE_TYPE_TEXT,
    PROPERTY_FILE_NAME,
    PROPERTY_FILE_SIZE,
    AckMode,
    DestinationKind,
)
from pubsub_gateway.core.config.transport import TransportConfig


@dataclass(frozen=True)
class Destination:
    """A named topic or queue on the broker."""

    name: str
    kind: DestinationKind

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass
class BrokerMessage:
    """
    A message crossing the transport seam in either direction.

    Exactly one of ``text`` or ``attachment`` carries the body. ``message_id``,
    ``destination`` and ``ack_token`` are filled in by the transport on receipt.
    """

    text: str | None = None
    attachment: bytes | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    application_message_id: str | None = None
    application_message_type: str | None = None
    sender_timestamp: int | None = None
    dmq_eligible: bool = False
    message_id: str | None = None
    destination: Destination | None = None
    ack_token: Any = field(default=None, repr=False, compare=False)

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None

    @classmethod
    def text_message(cls, body: str) -> "BrokerMessage":
        """Build an outbound text message stamped with an ``APP-<ms>`` id."""
        now_ms = int(time.time() * 1000)
        return cls(
            text=body,
            application_message_id=f"{MESSAGE_ID_PREFIX_TEXT}-{now_ms}",
            application_message_type=MESSAGE_TYPE_TEXT,
            sender_timestamp=now_ms,
            dmq_eligible=True,
        )

    @classmethod
    def file_message(cls, filename: str, data: bytes) -> "BrokerMessage":
        """Build an outbound file message carrying the name and size as properties."""
        now_ms = int(time.time() * 1000)
        return cls(
            attachment=data,
            properties={PROPERTY_FILE_NAME: filename, PROPERTY_FILE_SIZE: len(data)},
            application_message_id=f"{MESSAGE_ID_PREFIX_FILE}-{now_ms}",
            application_message_type=MESSAGE_TYPE_FILE,
            sender_timestamp=now_ms,
            dmq_eligible=True,
        )


MessageListener = Callable[[BrokerMessage], None]
ExceptionListener = Callable[[Exception], None]


@runtime_checkable
class PublishEventHandler(Protocol):
    """Receives asynchronous publish acknowledgements and rejections."""

    def response_received(self, message_id: str | None) -> None:
        ...

    def handle_error(self, message_id: str | None, error: Exception, timestamp: int) -> None:
        ...


@runtime_checkable
class SubscriptionHandle(Protocol):
    """
    A started consumer (topic) or flow (queue).

    ``is_running`` turns False when the handle stops on its own, for example
    after its connection was lost for good. The reconnect supervisor polls it.
    """

    @property
    def is_running(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class BrokerTransport(Protocol):
    """
    Protocol for broker client libraries.

    Implementations:
    - RedisTransport: Redis pub/sub for topics, Redis Streams for queues
    - InMemoryBroker (tests): synchronous in-process delivery
    """

    def connect(self, config: TransportConfig) -> Any:
        """
        Open and authenticate one session.

        Raises:
            BrokerConnectionError: If the broker is unreachable or rejects the client
        """
        ...

    def create_producer(self, session: Any, handler: PublishEventHandler) -> Any:
        ...

    def create_consumer(
        self,
        session: Any,
        topic: str,
        listener: MessageListener,
        on_exception: ExceptionListener,
    ) -> SubscriptionHandle:
        ...

    def create_flow(
        self,
        session: Any,
        queue: str,
        listener: MessageListener,
        on_exception: ExceptionListener,
        ack_mode: AckMode = AckMode.CLIENT,
        flow_name: str | None = None,
    ) -> SubscriptionHandle:
        ...

    def send(self, producer: Any, message: BrokerMessage, destination: Destination) -> None:
        """
        Publish one message.

        Raises:
            BrokerConnectionError: If the message could not be handed to the broker
        """
        ...

    def ack(self, message: BrokerMessage) -> None:
        ...

    def is_closed(self, session: Any) -> bool:
        ...

    def close(self, session: Any) -> None:
        ...

"""
Subscription Registry
=====================

Owns every live topic subscription and queue listener.

WHAT IT TRACKS
--------------
Each subscription holds a DEDICATED session borrowed from the consumer pool
plus exactly one handle bound to it:

- topic  → consumer (no acknowledgement)
- queue  → client-acknowledged flow

The dedicated session is never returned to the pool while the subscription
lives. Teardown always runs in the same order: stop the flow, close the
consumer, then destroy the session through ``pool.invalidate``.

RECONNECT SUPERVISOR
--------------------
A background thread checks every ACTIVE subscription on a fixed interval.
A subscription whose session is closed or whose handle stopped running is
moved to RECONNECTING, torn down, and rebuilt with tenacity retries:

    active ──(defunct)──▶ reconnecting ──(attached)──▶ active
                                │
                                └──(attempts exhausted)──▶ failed

Queue flows re-attach under the subscription id as consumer name, so
messages delivered but not acknowledged before the drop are redelivered.

STAGE-SUB: Subscriptions
------------------------
SUB.1: Subscribe / listen
SUB.2: Unsubscribe / shutdown
SUB.3: Supervisor

Author: System Architect
Date: 2025-12-11
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from pubsub_gateway.application.services.message_handler import MessageHandler
from pubsub_gateway.core.config.constants import AckMode, DestinationKind, SubscriptionState
from pubsub_gateway.core.exceptions.base import GatewayBaseError
from pubsub_gateway.core.exceptions.broker import (
    BrokerConnectionError,
    BrokerError,
    SubscriptionError,
    SubscriptionNotFoundError,
)
from pubsub_gateway.core.exceptions.connection_pool import ConnectionPoolError
from pubsub_gateway.core.interfaces.transport import (
    BrokerMessage,
    BrokerTransport,
    Destination,
    SubscriptionHandle,
)
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.core.resilience.session_pool import SessionPool
from pubsub_gateway.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


@dataclass(eq=False)
class Subscription:
    """One live subscription and the resources bound to it."""

    subscription_id: str
    destination: Destination
    session: Any = field(default=None, repr=False)
    consumer: SubscriptionHandle | None = field(default=None, repr=False)
    flow: SubscriptionHandle | None = field(default=None, repr=False)
    state: SubscriptionState = SubscriptionState.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reconnect_count: int = 0
    last_error: str | None = None

    @property
    def kind(self) -> DestinationKind:
        return self.destination.kind

    @property
    def name(self) -> str:
        return self.destination.name

    @property
    def handle(self) -> SubscriptionHandle | None:
        return self.flow if self.flow is not None else self.consumer

    def snapshot(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "destination": self.name,
            "kind": self.kind.value,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "reconnect_count": self.reconnect_count,
            "last_error": self.last_error,
        }


class SubscriptionRegistry:
    """Creates, supervises and tears down subscriptions."""

    def __init__(
        self,
        pool: SessionPool[Any],
        transport: BrokerTransport,
        handler: MessageHandler,
        supervisor_interval: float = 5.0,
        reconnect_attempts: int = 5,
        reconnect_backoff: float = 1.0,
        reconnect_backoff_cap: float = 30.0,
        metrics: MetricsCollector | None = None,
    ):
        self._pool = pool
        self._transport = transport
        self._handler = handler
        self._supervisor_interval = supervisor_interval
        self._reconnect_attempts = max(1, reconnect_attempts)
        self._reconnect_backoff = reconnect_backoff
        self._reconnect_backoff_cap = reconnect_backoff_cap
        self._metrics = metrics or get_metrics_collector()

        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.RLock()
        self._closed = False

        self._stop_supervisor = threading.Event()
        self._supervisor: threading.Thread | None = None

    # =========================================================================
    # Subscribe
    # =========================================================================

    def subscribe_topic(self, name: str) -> Subscription:
        """
        Subscribe to a topic on a dedicated session.

        Raises:
            BrokerConnectionError: If the session, consumer or subscription could not be created
            PoolExhaustedError: If the consumer pool has no capacity left
        """
        return self._subscribe(Destination(name, DestinationKind.TOPIC))

    def listen_queue(self, name: str) -> Subscription:
        """
        Bind a client-acknowledged flow to a queue on a dedicated session.

        Raises:
            BrokerConnectionError: If the session or flow could not be created
            PoolExhaustedError: If the consumer pool has no capacity left
        """
        return self._subscribe(Destination(name, DestinationKind.QUEUE))

    def _subscribe(self, destination: Destination) -> Subscription:
        if self._closed:
            raise SubscriptionError("Subscription registry is shut down", details={"destination": str(destination)})

        subscription = Subscription(
            subscription_id=f"{destination.kind.value}-{uuid.uuid4().hex[:12]}",
            destination=destination,
        )
        self._attach(subscription)

        with self._lock:
            registered = not self._closed
            if registered:
                self._subscriptions[subscription.subscription_id] = subscription

        if not registered:
            self._teardown(subscription)
            subscription.state = SubscriptionState.CLOSED
            raise SubscriptionError("Subscription registry is shut down", details={"destination": str(destination)})

        self._metrics.record_subscription_event(destination.kind.value, "created")
        logger.info(
            "Subscription created",
            stage="SUB.1",
            subscription_id=subscription.subscription_id,
            kind=destination.kind.value,
            destination=destination.name
        )
        return subscription

    def _attach(self, subscription: Subscription) -> None:
        """Borrow a dedicated session and start a consumer or flow on it."""
        destination = subscription.destination
        session = self._pool.borrow()
        handle = None
        try:
            if destination.kind is DestinationKind.TOPIC:
                handle = self._transport.create_consumer(
                    session,
                    destination.name,
                    self._topic_listener(destination),
                    self._exception_listener(subscription),
                )
            else:
                handle = self._transport.create_flow(
                    session,
                    destination.name,
                    self._queue_listener(destination),
                    self._exception_listener(subscription),
                    AckMode.CLIENT,
                    flow_name=subscription.subscription_id,
                )
            handle.start()
        except Exception as e:
            if handle is not None:
                self._release_handle(handle, subscription)
            self._pool.invalidate(session)
            logger.error(
                "Subscription setup failed, session invalidated",
                stage="SUB.1.1",
                kind=destination.kind.value,
                destination=destination.name,
                error=str(e),
                error_type=type(e).__name__
            )
            if isinstance(e, GatewayBaseError):
                raise
            raise BrokerConnectionError.from_exception(
                e, message=f"Failed to subscribe to {destination}", destination=str(destination)
            ) from e

        subscription.session = session
        if destination.kind is DestinationKind.TOPIC:
            subscription.consumer = handle
        else:
            subscription.flow = handle

    # =========================================================================
    # Listeners (run on transport callback threads)
    # =========================================================================

    def _topic_listener(self, destination: Destination):
        def on_message(message: BrokerMessage) -> None:
            self._handler.handle(message, destination.kind, destination.name)

        return on_message

    def _queue_listener(self, destination: Destination):
        def on_message(message: BrokerMessage) -> None:
            processed = False
            try:
                processed = self._handler.handle(message, destination.kind, destination.name)
            finally:
                self._acknowledge(message, destination, processed)

        return on_message

    def _acknowledge(self, message: BrokerMessage, destination: Destination, processed: bool) -> None:
        if not processed:
            logger.warning(
                "Acknowledging queue message that was not cached",
                stage="DLV.1.3",
                destination=destination.name,
                message_id=message.message_id
            )
        try:
            self._transport.ack(message)
        except GatewayBaseError as e:
            logger.error(
                "Acknowledgement failed, message stays pending",
                stage="DLV.1.3",
                destination=destination.name,
                message_id=message.message_id,
                error=e.message
            )

    def _exception_listener(self, subscription: Subscription):
        def on_exception(exc: Exception) -> None:
            subscription.last_error = str(exc)
            self._metrics.record_error(type(exc).__name__, "SUB.3")
            logger.warning(
                "Subscription reported a transport error",
                stage="SUB.3.1",
                subscription_id=subscription.subscription_id,
                error=str(exc),
                error_type=type(exc).__name__
            )

        return on_exception

    # =========================================================================
    # Teardown
    # =========================================================================

    def unsubscribe(self, subscription_id: str) -> Subscription:
        """
        Tear down one subscription.

        Raises:
            SubscriptionNotFoundError: If the id is unknown
        """
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                raise SubscriptionNotFoundError(
                    f"Unknown subscription: {subscription_id}",
                    details={"subscription_id": subscription_id}
                )
            subscription.state = SubscriptionState.CLOSED

        self._teardown(subscription)
        self._metrics.record_subscription_event(subscription.kind.value, "closed")
        logger.info("Subscription closed", stage="SUB.2", subscription_id=subscription_id)
        return subscription

    def shutdown(self) -> None:
        """
        Stop the supervisor and tear down every subscription.

        Order per subscription: stop flow → close consumer → destroy session.
        """
        self.stop_supervisor()

        with self._lock:
            self._closed = True
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()

        for subscription in subscriptions:
            subscription.state = SubscriptionState.CLOSED
            self._teardown(subscription)
            self._metrics.record_subscription_event(subscription.kind.value, "closed")

        logger.info("Subscription registry shut down", stage="SUB.2", closed=len(subscriptions))

    def _teardown(self, subscription: Subscription) -> None:
        flow, consumer, session = subscription.flow, subscription.consumer, subscription.session
        subscription.flow = subscription.consumer = subscription.session = None

        if flow is not None:
            self._release_handle(flow, subscription)
        if consumer is not None:
            self._release_handle(consumer, subscription)
        if session is not None:
            self._pool.invalidate(session)

    def _release_handle(self, handle: SubscriptionHandle, subscription: Subscription) -> None:
        try:
            if subscription.kind is DestinationKind.QUEUE:
                handle.stop()
            handle.close()
        except Exception as e:
            logger.warning(
                "Failed to release subscription handle",
                stage="SUB.2.1",
                subscription_id=subscription.subscription_id,
                error=str(e),
                error_type=type(e).__name__
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, subscription_id: str) -> Subscription | None:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def list_subscriptions(self) -> list[dict[str, Any]]:
        with self._lock:
            return [s.snapshot() for s in self._subscriptions.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    # =========================================================================
    # Reconnect supervisor
    # =========================================================================

    def start_supervisor(self) -> None:
        if self._supervisor_interval <= 0 or self._supervisor is not None:
            return
        self._stop_supervisor.clear()
        self._supervisor = threading.Thread(
            target=self._run_supervisor,
            name="subscription-supervisor",
            daemon=True,
        )
        self._supervisor.start()
        logger.info("Subscription supervisor started", stage="SUB.3", interval=self._supervisor_interval)

    def stop_supervisor(self) -> None:
        self._stop_supervisor.set()
        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None and supervisor is not threading.current_thread():
            supervisor.join(timeout=self._supervisor_interval + 5.0)

    def _run_supervisor(self) -> None:
        while not self._stop_supervisor.wait(self._supervisor_interval):
            self.check_subscriptions()

    def check_subscriptions(self) -> int:
        """
        Run one supervisor pass.

        STAGE-SUB.3: Supervisor check

        Returns:
            Number of subscriptions re-created
        """
        with self._lock:
            candidates = [s for s in self._subscriptions.values() if s.state is SubscriptionState.ACTIVE]

        recovered = 0
        for subscription in candidates:
            if self._closed:
                break
            if self._is_healthy(subscription):
                continue
            if self._recover(subscription):
                recovered += 1
        return recovered

    def _is_healthy(self, subscription: Subscription) -> bool:
        handle = subscription.handle
        if subscription.session is None or handle is None:
            return False
        return not self._transport.is_closed(subscription.session) and handle.is_running

    def _recover(self, subscription: Subscription) -> bool:
        with self._lock:
            if subscription.state is not SubscriptionState.ACTIVE:
                return False
            if self._subscriptions.get(subscription.subscription_id) is not subscription:
                return False
            subscription.state = SubscriptionState.RECONNECTING

        logger.warning(
            "Subscription defunct, reconnecting",
            stage="SUB.3.2",
            subscription_id=subscription.subscription_id,
            kind=subscription.kind.value,
            destination=subscription.name
        )
        self._teardown(subscription)

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._reconnect_attempts) | stop_when_event_set(self._stop_supervisor),
                wait=wait_exponential(multiplier=self._reconnect_backoff, max=self._reconnect_backoff_cap),
                retry=retry_if_exception_type((BrokerError, ConnectionPoolError)),
                sleep=self._stop_supervisor.wait,
                reraise=True,
                before_sleep=lambda retry_state: logger.info(
                    "Subscription reconnect retry",
                    stage="SUB.3.3",
                    subscription_id=subscription.subscription_id,
                    attempt=retry_state.attempt_number,
                ),
            ):
                with attempt:
                    self._attach(subscription)
        except GatewayBaseError as e:
            subscription.state = SubscriptionState.FAILED
            subscription.last_error = e.message
            self._metrics.record_subscription_event(subscription.kind.value, "failed")
            logger.error(
                "Subscription reconnect failed",
                stage="SUB.3.4",
                subscription_id=subscription.subscription_id,
                attempts=self._reconnect_attempts,
                error=e.message
            )
            return False

        with self._lock:
            still_tracked = (
                not self._closed
                and self._subscriptions.get(subscription.subscription_id) is subscription
            )
            if still_tracked:
                subscription.state = SubscriptionState.ACTIVE
                subscription.reconnect_count += 1

        if not still_tracked:
            self._teardown(subscription)
            subscription.state = SubscriptionState.CLOSED
            return False

        self._metrics.record_subscription_event(subscription.kind.value, "reconnected")
        logger.info(
            "Subscription reconnected",
            stage="SUB.3",
            subscription_id=subscription.subscription_id,
            reconnect_count=subscription.reconnect_count
        )
        return True

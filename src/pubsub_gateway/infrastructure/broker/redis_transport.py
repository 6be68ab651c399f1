"""
Redis Broker Transport

Architecture:
    RedisTransport (BrokerTransport implementation)
        ├── RedisBrokerSession (one redis.Redis client per session)
        ├── RedisProducer (publish handle bound to a session)
        ├── RedisTopicConsumer (PubSub + run_in_thread worker)
        └── RedisQueueFlow (consumer group + XREADGROUP worker thread)

Destination mapping:
    - Topic <name>  → pub/sub channel  <tenant>:topic:<name>
    - Queue <name>  → stream           <tenant>:queue:<name>
    - Queue readers → consumer group   <tenant>-gateway

Why Redis Streams for queues?
    - Persistent, ordered log of messages
    - Consumer groups give point-to-point delivery
    - XACK gives client acknowledgement; un-acked entries stay pending
      and are redelivered when the same consumer re-attaches

Reconnect:
    The connect ping is not retried, so an unreachable broker fails the
    borrow at once. Commands retry with exponential backoff through
    redis-py's Retry, bounded by ReconnectPolicy.command_retries. Only the
    subscription workers keep reconnecting without limit; PubSub replays its
    channel subscriptions whenever its connection is re-established.

Author: System Architect
Date: 2025-12-13
"""

import itertools
import threading
import time
import uuid
from typing import Any

import redis
from redis.backoff import ExponentialBackoff, NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from pubsub_gateway.core.config.constants import AckMode, DestinationKind
from pubsub_gateway.core.config.transport import TransportConfig
from pubsub_gateway.core.exceptions.broker import BrokerConnectionError
from pubsub_gateway.core.interfaces.transport import (
    BrokerMessage,
    Destination,
    ExceptionListener,
    MessageListener,
    PublishEventHandler,
)
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.infrastructure.broker.codec import MessageSerializer

logger = get_logger(__name__)


def topic_channel(tenant: str, name: str) -> str:
    return f"{tenant}:topic:{name}"


def queue_stream(tenant: str, name: str) -> str:
    return f"{tenant}:queue:{name}"


def consumer_group(tenant: str) -> str:
    return f"{tenant}-gateway"


def _public_url(url: str) -> str:
    """Drop user info from a broker URL so it can go into error details."""
    scheme, _, rest = url.partition("://")
    return f"{scheme}://{rest.rsplit('@', 1)[-1]}"


# =============================================================================
# LAYER 1: SESSIONS AND PRODUCERS
# =============================================================================


class RedisBrokerSession:
    """One authenticated Redis client with its own connection pool."""

    def __init__(self, session_id: str, client: redis.Redis, config: TransportConfig):
        self.session_id = session_id
        self.client = client
        self.config = config
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.client.close()

    def __repr__(self) -> str:
        return f"RedisBrokerSession(id='{self.session_id}', closed={self._closed})"


class RedisProducer:
    """Publish handle bound to one session."""

    def __init__(self, session: RedisBrokerSession, handler: PublishEventHandler):
        self.session = session
        self.handler = handler


# =============================================================================
# LAYER 2: TOPIC CONSUMERS
# PubSub subscription dispatched on a redis-py worker thread
# =============================================================================


class RedisTopicConsumer:
    """
    Topic consumer backed by ``PubSub.run_in_thread``.

    With auto-resubscribe enabled, worker errors are logged and the worker
    keeps reading: the next read reconnects and PubSub replays the channel
    subscription. Without it, the first worker error stops the consumer and
    ``is_running`` turns False so the reconnect supervisor can rebuild it.
    """

    def __init__(
        self,
        session: RedisBrokerSession,
        channel: str,
        destination: Destination,
        listener: MessageListener,
        on_exception: ExceptionListener,
        serializer: MessageSerializer,
        auto_resubscribe: bool = True,
        poll_timeout: float = 1.0,
    ):
        self.session = session
        self.channel = channel
        self.destination = destination
        self._listener = listener
        self._on_exception = on_exception
        self._serializer = serializer
        self._auto_resubscribe = auto_resubscribe
        self._poll_timeout = poll_timeout
        self._pubsub = None
        self._thread = None
        self._failed = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._failed

    def start(self) -> None:
        """Subscribe to the channel and start the worker thread."""
        if self._thread is not None:
            return
        try:
            self._pubsub = self.session.client.pubsub(ignore_subscribe_messages=True)
            self._pubsub.subscribe(**{self.channel: self._on_raw_message})
            self._thread = self._pubsub.run_in_thread(
                sleep_time=self._poll_timeout,
                daemon=True,
                exception_handler=self._on_worker_error,
            )
        except RedisError as e:
            raise BrokerConnectionError.from_exception(
                e, message=f"Failed to subscribe to {self.destination}", channel=self.channel
            ) from e
        logger.info("Topic consumer started", stage="T.2", channel=self.channel)

    def stop(self) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        thread.stop()
        if thread is not threading.current_thread():
            thread.join(timeout=self._poll_timeout + 1.0)

    def close(self) -> None:
        self.stop()
        if self._pubsub is not None:
            try:
                self._pubsub.close()
            except RedisError as e:
                logger.warning("PubSub close failed", stage="T.2.3", channel=self.channel, error=str(e))
            self._pubsub = None
        logger.info("Topic consumer closed", stage="T.2", channel=self.channel)

    def _on_raw_message(self, raw: dict[str, Any]) -> None:
        try:
            message = self._serializer.decode(raw["data"])
        except ValueError as e:
            logger.warning("Undecodable topic payload dropped", stage="T.2.1", channel=self.channel, error=str(e))
            return
        message.destination = self.destination
        try:
            self._listener(message)
        except Exception as e:
            logger.error(
                "Topic listener failed",
                stage="T.2.1",
                channel=self.channel,
                error=str(e),
                error_type=type(e).__name__
            )

    def _on_worker_error(self, exc: BaseException, pubsub: Any, thread: Any) -> None:
        transient = isinstance(exc, (RedisConnectionError, RedisTimeoutError))
        if self._auto_resubscribe and transient:
            logger.warning("Topic consumer connection error, resubscribing", stage="T.2.2", channel=self.channel, error=str(exc))
            time.sleep(self._poll_timeout)
            return

        logger.error(
            "Topic consumer stopped",
            stage="T.2.2",
            channel=self.channel,
            error=str(exc),
            error_type=type(exc).__name__
        )
        self._failed = True
        thread.stop()
        self._on_exception(exc)


# =============================================================================
# LAYER 3: QUEUE FLOWS
# Consumer-group reader with client acknowledgement
# =============================================================================


class RedisQueueFlow:
    """
    Queue flow backed by a Redis Streams consumer group.

    Algorithm:
    1. Ensure the consumer group exists (MKSTREAM, idempotent)
    2. Read this consumer's own pending entries ("0") until exhausted
    3. Block on new entries (">")
    4. Decode each entry and hand it to the listener
    5. In AUTO ack mode, acknowledge after the listener returns

    A read error stops the worker, marks the flow not running and is
    reported through ``on_exception``.
    """

    def __init__(
        self,
        session: RedisBrokerSession,
        stream: str,
        group: str,
        consumer_name: str,
        destination: Destination,
        listener: MessageListener,
        on_exception: ExceptionListener,
        serializer: MessageSerializer,
        ack_mode: AckMode = AckMode.CLIENT,
        block_ms: int = 1000,
        batch_size: int = 10,
    ):
        self.session = session
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self.destination = destination
        self.ack_mode = ack_mode
        self._listener = listener
        self._on_exception = on_exception
        self._serializer = serializer
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._failed = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._failed

    def start(self) -> None:
        if self._thread is not None:
            return
        self.ensure_group()
        self._stop.clear()
        self._failed = False
        self._thread = threading.Thread(
            target=self._run,
            name=f"flow-{self.consumer_name}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Queue flow started", stage="T.3", stream=self.stream, consumer=self.consumer_name)

    def stop(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._block_ms / 1000 + 1.0)
        logger.info("Queue flow stopped", stage="T.3", stream=self.stream, consumer=self.consumer_name)

    def close(self) -> None:
        if self._thread is not None:
            self.stop()

    def ensure_group(self) -> None:
        """
        Create the consumer group if it does not exist.

        BUSYGROUP means the group already exists, which is expected.
        """
        try:
            self.session.client.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("Consumer group created", stage="T.3.1", stream=self.stream, group=self.group)
        except RedisError as e:
            if "BUSYGROUP" in str(e):
                return
            raise BrokerConnectionError.from_exception(
                e, message=f"Failed to bind flow to {self.destination}", stream=self.stream, group=self.group
            ) from e

    def _run(self) -> None:
        last_id = "0"
        while not self._stop.is_set():
            try:
                response = self.session.client.xreadgroup(
                    self.group,
                    self.consumer_name,
                    {self.stream: last_id},
                    count=self._batch_size,
                    block=self._block_ms,
                )
            except RedisError as e:
                if self._stop.is_set():
                    break
                logger.error(
                    "Queue flow read failed",
                    stage="T.3.2",
                    stream=self.stream,
                    consumer=self.consumer_name,
                    error=str(e)
                )
                self._failed = True
                self._on_exception(BrokerConnectionError.from_exception(e, stream=self.stream))
                break

            entries = self._entries(response)
            if last_id != ">":
                # Still paging through our own pending entries.
                last_id = entries[-1][0] if entries else ">"

            try:
                for entry_id, fields in entries:
                    if self._stop.is_set():
                        break
                    self.process_entry(entry_id, fields)
            except BrokerConnectionError as e:
                logger.error("Queue flow acknowledgement failed", stage="T.3.2", stream=self.stream, error=str(e))
                self._failed = True
                self._on_exception(e)
                break

    @staticmethod
    def _entries(response: Any) -> list[tuple[Any, Any]]:
        # response format: [[stream_name, [[id, {fields}]]]]
        entries = []
        for _stream, entry_list in response or []:
            entries.extend((entry_id, fields) for entry_id, fields in entry_list)
        return entries

    def process_entry(self, entry_id: Any, fields: dict[Any, Any] | None) -> None:
        """Decode one entry and hand it to the listener."""
        entry_id = entry_id.decode("utf-8") if isinstance(entry_id, bytes) else str(entry_id)

        if not fields:
            # Entry trimmed from the stream while still pending.
            self.acknowledge(entry_id)
            return

        try:
            message = self._serializer.from_stream_fields(fields)
        except (ValueError, KeyError) as e:
            logger.warning(
                "Undecodable queue entry acknowledged and dropped",
                stage="T.3.3",
                stream=self.stream,
                entry_id=entry_id,
                error=str(e)
            )
            self.acknowledge(entry_id)
            return

        message.message_id = entry_id
        message.destination = self.destination
        message.ack_token = (self, entry_id)

        try:
            self._listener(message)
        except Exception as e:
            logger.error(
                "Queue listener failed",
                stage="T.3.3",
                stream=self.stream,
                entry_id=entry_id,
                error=str(e),
                error_type=type(e).__name__
            )

        if self.ack_mode is AckMode.AUTO:
            self.acknowledge(entry_id)

    def acknowledge(self, entry_id: str) -> None:
        """
        XACK one entry.

        Raises:
            BrokerConnectionError: If the acknowledgement could not be sent
        """
        try:
            self.session.client.xack(self.stream, self.group, entry_id)
        except RedisError as e:
            raise BrokerConnectionError.from_exception(
                e, message=f"Failed to acknowledge {entry_id}", stream=self.stream
            ) from e


# =============================================================================
# LAYER 4: TRANSPORT
# =============================================================================


class RedisTransport:
    """
    BrokerTransport over Redis.

    Usage:
        transport = RedisTransport()
        session = transport.connect(config)
        producer = transport.create_producer(session, handler)
        transport.send(producer, BrokerMessage.text_message("hi"), destination)
    """

    def __init__(self, serializer: MessageSerializer | None = None):
        self._serializer = serializer or MessageSerializer()
        self._session_ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def connect(self, config: TransportConfig) -> RedisBrokerSession:
        """
        Open and authenticate one session.

        STAGE-T.1: Connection establishment

        Raises:
            BrokerConnectionError: If the broker is unreachable or rejects the client
        """
        kwargs = self.connection_kwargs(config)
        command_retry = kwargs.pop("retry")
        client = redis.Redis.from_url(config.url, retry=Retry(NoBackoff(), 0), **kwargs)
        try:
            client.ping()
            client.set_retry(command_retry)
        except RedisError as e:
            client.close()
            logger.error(
                "Broker connection failed",
                stage="T.1",
                host=_public_url(config.url),
                error=str(e),
                error_type=type(e).__name__
            )
            raise BrokerConnectionError.from_exception(
                e,
                message=f"Failed to connect to broker: {e}",
                host=_public_url(config.url),
                tenant=config.tenant
            ) from e

        session = RedisBrokerSession(f"{config.client_name}-{next(self._session_ids)}", client, config)
        logger.debug("Broker session connected", stage="T.1", session_id=session.session_id)
        return session

    @staticmethod
    def connection_kwargs(config: TransportConfig) -> dict[str, Any]:
        """Build redis-py connection arguments from the transport configuration."""
        policy = config.reconnect
        kwargs: dict[str, Any] = {
            "username": config.username,
            "password": config.password,
            "client_name": config.client_name,
            "socket_timeout": config.socket_timeout,
            "socket_connect_timeout": config.socket_connect_timeout,
            "health_check_interval": config.health_check_interval,
            "retry": Retry(ExponentialBackoff(cap=policy.backoff_cap, base=policy.backoff), policy.command_retries),
            "retry_on_error": [RedisConnectionError, RedisTimeoutError],
            "decode_responses": False,
        }

        if config.secure and config.tls is not None:
            tls = config.tls
            kwargs.update(
                ssl_ca_certs=tls.ca_file,
                ssl_certfile=tls.cert_file,
                ssl_keyfile=tls.key_file,
                ssl_password=tls.key_password,
                ssl_cert_reqs="required" if tls.validate_certificate else "none",
                ssl_check_hostname=tls.validate_certificate,
            )
        return kwargs

    def is_closed(self, session: RedisBrokerSession) -> bool:
        return session.closed

    def close(self, session: RedisBrokerSession) -> None:
        session.close()
        logger.debug("Broker session closed", stage="T.1", session_id=session.session_id)

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def create_producer(self, session: RedisBrokerSession, handler: PublishEventHandler) -> RedisProducer:
        return RedisProducer(session, handler)

    def send(self, producer: RedisProducer, message: BrokerMessage, destination: Destination) -> None:
        """
        Publish one message.

        Topics use PUBLISH; queues use XADD trimmed to queue_max_len.

        Raises:
            BrokerConnectionError: If Redis rejected the command
        """
        session = producer.session
        config = session.config
        try:
            if destination.kind is DestinationKind.TOPIC:
                receivers = session.client.publish(
                    topic_channel(config.tenant, destination.name),
                    self._serializer.encode(message),
                )
                logger.debug("Topic message published", stage="T.4", destination=str(destination), receivers=receivers)
            else:
                trim = {"maxlen": config.queue_max_len, "approximate": True} if config.queue_max_len > 0 else {}
                entry_id = session.client.xadd(
                    queue_stream(config.tenant, destination.name),
                    self._serializer.to_stream_fields(message),
                    **trim,
                )
                logger.debug("Queue message appended", stage="T.4", destination=str(destination), entry_id=entry_id)
        except RedisError as e:
            producer.handler.handle_error(message.application_message_id, e, int(time.time() * 1000))
            raise BrokerConnectionError.from_exception(
                e, message=f"Failed to publish to {destination}", destination=str(destination)
            ) from e

        producer.handler.response_received(message.application_message_id)

    # -------------------------------------------------------------------------
    # Consumers and flows
    # -------------------------------------------------------------------------

    def create_consumer(
        self,
        session: RedisBrokerSession,
        topic: str,
        listener: MessageListener,
        on_exception: ExceptionListener,
    ) -> RedisTopicConsumer:
        return RedisTopicConsumer(
            session=session,
            channel=topic_channel(session.config.tenant, topic),
            destination=Destination(topic, DestinationKind.TOPIC),
            listener=listener,
            on_exception=on_exception,
            serializer=self._serializer,
            auto_resubscribe=session.config.auto_resubscribe,
        )

    def create_flow(
        self,
        session: RedisBrokerSession,
        queue: str,
        listener: MessageListener,
        on_exception: ExceptionListener,
        ack_mode: AckMode = AckMode.CLIENT,
        flow_name: str | None = None,
    ) -> RedisQueueFlow:
        config = session.config
        return RedisQueueFlow(
            session=session,
            stream=queue_stream(config.tenant, queue),
            group=consumer_group(config.tenant),
            consumer_name=flow_name or f"{config.client_name}-{uuid.uuid4().hex[:8]}",
            destination=Destination(queue, DestinationKind.QUEUE),
            listener=listener,
            on_exception=on_exception,
            serializer=self._serializer,
            ack_mode=ack_mode,
            block_ms=config.flow_block_ms,
            batch_size=config.flow_batch_size,
        )

    def ack(self, message: BrokerMessage) -> None:
        """Acknowledge a queue message. Topic messages carry no ack token."""
        if message.ack_token is None:
            return
        flow, entry_id = message.ack_token
        flow.acknowledge(entry_id)

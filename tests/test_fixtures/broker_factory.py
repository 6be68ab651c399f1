"""
In-Memory Broker

A BrokerTransport implementation with synchronous, in-process delivery for
service and API tests. Every lifecycle call is appended to ``events`` so
tests can assert teardown order.

Switches:
- ``fail_connect``: connect() raises BrokerConnectionError
- ``fail_send``: send() reports a rejection and raises BrokerConnectionError
- ``kill(session)``: closes a session out of band (no event recorded)
"""

import dataclasses
import itertools
import threading
from collections import defaultdict

from pubsub_gateway.core.config.constants import AckMode, DestinationKind
from pubsub_gateway.core.exceptions import BrokerConnectionError


class InMemorySession:
    def __init__(self, session_id: int):
        self.session_id = session_id
        self.closed = False

    def __repr__(self) -> str:
        return f"InMemorySession({self.session_id}, closed={self.closed})"


class InMemoryProducer:
    def __init__(self, session: InMemorySession, handler):
        self.session = session
        self.handler = handler


class InMemoryHandle:
    """Consumer (topic) or flow (queue) bound to one session."""

    def __init__(self, broker, session, kind, name, listener, on_exception, ack_mode=AckMode.AUTO, flow_name=None):
        self.broker = broker
        self.session = session
        self.kind = kind
        self.name = name
        self.listener = listener
        self.on_exception = on_exception
        self.ack_mode = ack_mode
        self.flow_name = flow_name
        self.running = False
        self.closed = False

    @property
    def is_running(self) -> bool:
        return self.running and not self.session.closed

    def start(self) -> None:
        self.broker.events.append(("start", self.kind.value, self.name))
        self.running = True
        if self.kind is DestinationKind.QUEUE:
            self.broker._flush_queue(self.name)

    def stop(self) -> None:
        self.broker.events.append(("stop", self.kind.value, self.name))
        self.running = False

    def close(self) -> None:
        self.broker.events.append(("close", self.kind.value, self.name))
        self.running = False
        self.closed = True
        self.broker._forget_handle(self)


class InMemoryBroker:
    """Synchronous broker: send() invokes matching listeners before returning."""

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self._handles: list[InMemoryHandle] = []
        self._queued: dict[str, list] = defaultdict(list)

        self.sessions: list[InMemorySession] = []
        self.events: list[tuple] = []
        self.sent: list[tuple] = []
        self.acked: list[str] = []
        self.rejections: list[str] = []
        self.fail_connect = False
        self.fail_send = False

    # --- BrokerTransport -----------------------------------------------------

    def connect(self, config):
        if self.fail_connect:
            raise BrokerConnectionError("Broker unreachable", details={"host": config.url})
        session = InMemorySession(next(self._ids))
        with self._lock:
            self.sessions.append(session)
        self.events.append(("connect", session.session_id))
        return session

    def create_producer(self, session, handler):
        self._require_open(session)
        return InMemoryProducer(session, handler)

    def create_consumer(self, session, topic, listener, on_exception):
        self._require_open(session)
        handle = InMemoryHandle(self, session, DestinationKind.TOPIC, topic, listener, on_exception)
        with self._lock:
            self._handles.append(handle)
        return handle

    def create_flow(self, session, queue, listener, on_exception, ack_mode=AckMode.CLIENT, flow_name=None):
        self._require_open(session)
        handle = InMemoryHandle(
            self, session, DestinationKind.QUEUE, queue, listener, on_exception, ack_mode, flow_name
        )
        with self._lock:
            self._handles.append(handle)
        return handle

    def send(self, producer, message, destination):
        if self.fail_send or producer.session.closed:
            error = BrokerConnectionError("Send rejected", details={"destination": str(destination)})
            self.rejections.append(message.application_message_id)
            producer.handler.handle_error(message.application_message_id, error, 0)
            raise error

        self.sent.append((destination, message))
        if destination.kind is DestinationKind.TOPIC:
            for handle in self._running(DestinationKind.TOPIC, destination.name):
                handle.listener(self._received(message, destination, handle))
        else:
            with self._lock:
                self._queued[destination.name].append((destination, message))
            self._flush_queue(destination.name)
        producer.handler.response_received(message.application_message_id)

    def ack(self, message):
        if message.ack_token is None:
            return
        self.acked.append(message.message_id)
        self.events.append(("ack", message.message_id))

    def is_closed(self, session):
        return session.closed

    def close(self, session):
        session.closed = True
        self.events.append(("close_session", session.session_id))

    # --- Test controls -------------------------------------------------------

    def kill(self, session) -> None:
        session.closed = True

    def handles(self, kind: DestinationKind | None = None) -> list[InMemoryHandle]:
        with self._lock:
            return [h for h in self._handles if kind is None or h.kind is kind]

    def open_sessions(self) -> list[InMemorySession]:
        with self._lock:
            return [s for s in self.sessions if not s.closed]

    # --- Internals -----------------------------------------------------------

    def _require_open(self, session) -> None:
        if session.closed:
            raise BrokerConnectionError("Session is closed", details={"session": repr(session)})

    def _running(self, kind, name) -> list[InMemoryHandle]:
        with self._lock:
            return [h for h in self._handles if h.kind is kind and h.name == name and h.is_running]

    def _received(self, message, destination, handle):
        message_id = f"mem-{next(self._message_ids)}"
        token = (handle, message_id) if handle.kind is DestinationKind.QUEUE else None
        return dataclasses.replace(message, message_id=message_id, destination=destination, ack_token=token)

    def _flush_queue(self, name: str) -> None:
        # Point-to-point: each queued message goes to the first running flow.
        while True:
            with self._lock:
                flows = [h for h in self._handles
                         if h.kind is DestinationKind.QUEUE and h.name == name and h.is_running]
                if not flows or not self._queued[name]:
                    return
                destination, message = self._queued[name].pop(0)
                flow = flows[0]
            received = self._received(message, destination, flow)
            flow.listener(received)
            if flow.ack_mode is AckMode.AUTO:
                self.ack(received)

    def _forget_handle(self, handle: InMemoryHandle) -> None:
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)

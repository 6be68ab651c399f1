"""
Bounded Session Pool

Generic object pool for expensive, stateful broker sessions. Sessions are
created through a factory, validated on borrow and while idle, and either
re-idled or destroyed when handed back.

STAGE-POOL: Session Pool Management
-----------------------------------
POOL.1: Borrow (reuse idle, create below max_total, or block up to max_wait)
POOL.2: Return (passivate, then re-idle)
POOL.3: Invalidate (destroy, never re-idle)
POOL.4: Eviction (test idle sessions, top up to min_idle)
POOL.5: Close

Invariants:
- active + idle never exceeds max_total (sessions being created count too)
- a session is owned by exactly one borrower or sits idle, never both
- borrow is the only operation that blocks

Author: System Architect
Date: 2025-12-09
"""

import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pubsub_gateway.core.config.constants import PooledObjectState
from pubsub_gateway.core.exceptions.base import GatewayBaseError
from pubsub_gateway.core.exceptions.broker import SessionInvalidError
from pubsub_gateway.core.exceptions.connection_pool import PoolClosedError, PoolExhaustedError
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

T = TypeVar("T")


class PooledObjectFactory(Protocol[T]):
    """Lifecycle hooks the pool drives for each pooled object."""

    def create(self) -> T:
        ...

    def validate(self, obj: T) -> bool:
        ...

    def destroy(self, obj: T) -> None:
        ...

    def passivate(self, obj: T) -> None:
        ...


@dataclass(eq=False)
class PooledObject(Generic[T]):
    """Pool-side bookkeeping for one session."""

    obj: T
    state: PooledObjectState = PooledObjectState.IDLE
    created_at: float = field(default_factory=time.monotonic)
    last_borrowed_at: float | None = None
    borrow_count: int = 0

    def allocate(self) -> None:
        self.state = PooledObjectState.ACTIVE
        self.last_borrowed_at = time.monotonic()
        self.borrow_count += 1


@dataclass
class PoolStats:
    """Point-in-time occupancy of a pool."""

    name: str
    max_total: int
    min_idle: int
    num_active: int
    num_idle: int
    created_count: int
    destroyed_count: int
    closed: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SessionPool(Generic[T]):
    """
    Thread-safe bounded pool.

    Usage:
        pool = SessionPool(factory, name="producer", max_total=10)
        pool.start()

        with pool.session() as session:
            ...  # returned on success, invalidated on exception

        pool.close()
    """

    def __init__(
        self,
        factory: PooledObjectFactory[T],
        name: str = "sessions",
        max_total: int = 10,
        min_idle: int = 2,
        max_wait: float = 5.0,
        eviction_interval: float = 60.0,
        test_on_borrow: bool = True,
        test_while_idle: bool = True,
        metrics: MetricsCollector | None = None,
    ):
        if max_total < 1:
            raise ValueError("max_total must be at least 1")

        self.name = name
        self.max_total = max_total
        self.min_idle = min(min_idle, max_total)
        self.max_wait = max_wait
        self.eviction_interval = eviction_interval
        self.test_on_borrow = test_on_borrow
        self.test_while_idle = test_while_idle

        self._factory = factory
        self._metrics = metrics or get_metrics_collector()

        self._lock = threading.Lock()
        self._available = threading.Condition(self._lock)
        self._idle: deque[PooledObject[T]] = deque()
        self._all: dict[int, PooledObject[T]] = {}
        self._creating = 0
        self._created_count = 0
        self._destroyed_count = 0
        self._closed = False

        self._stop_evictor = threading.Event()
        self._evictor: threading.Thread | None = None

        logger.info(
            "Session pool initialized",
            stage="POOL.0",
            pool=name,
            max_total=max_total,
            min_idle=self.min_idle,
            max_wait=max_wait,
            eviction_interval=eviction_interval
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Warm up to min_idle and start the eviction thread."""
        try:
            self.ensure_min_idle()
        except GatewayBaseError as e:
            logger.warning(
                "Pool warm-up failed, sessions will be created on demand",
                stage="POOL.0",
                pool=self.name,
                error=str(e)
            )

        if self.eviction_interval > 0 and self._evictor is None:
            self._evictor = threading.Thread(
                target=self._run_evictor,
                name=f"{self.name}-pool-evictor",
                daemon=True,
            )
            self._evictor.start()

    def close(self) -> None:
        """
        Close the pool.

        STAGE-POOL.5: Idle sessions are destroyed now. Borrowed sessions are
        destroyed when they are later returned or invalidated.
        """
        with self._available:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            for pooled in idle:
                self._forget(pooled)
            self._available.notify_all()

        self._stop_evictor.set()
        if self._evictor is not None and self._evictor is not threading.current_thread():
            self._evictor.join(timeout=5.0)

        for pooled in idle:
            self._destroy_object(pooled.obj, reason="pool_closed")

        logger.info(
            "Session pool closed",
            stage="POOL.5",
            pool=self.name,
            destroyed_idle=len(idle),
            outstanding=len(self._all)
        )
        self._publish_gauges()

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Borrow / Return / Invalidate
    # =========================================================================

    def borrow(self, timeout: float | None = None) -> T:
        """
        Borrow a session.

        STAGE-POOL.1: Borrow

        Args:
            timeout: Seconds to wait when the pool is at capacity
                (defaults to max_wait)

        Returns:
            A session owned exclusively by the caller until returned or invalidated

        Raises:
            PoolExhaustedError: If no session became available in time
            PoolClosedError: If the pool is closed
            BrokerConnectionError: If a new session could not be created
        """
        wait = self.max_wait if timeout is None else timeout
        deadline = time.monotonic() + wait

        while True:
            pooled = None
            with self._available:
                while True:
                    if self._closed:
                        self._metrics.record_pool_borrow(self.name, "closed")
                        raise PoolClosedError(details={"pool": self.name})

                    if self._idle:
                        pooled = self._idle.popleft()
                        pooled.allocate()
                        break

                    if len(self._all) + self._creating < self.max_total:
                        self._creating += 1
                        break

                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._metrics.record_pool_borrow(self.name, "exhausted")
                        logger.warning(
                            "Session pool exhausted",
                            stage="POOL.1.1",
                            pool=self.name,
                            max_total=self.max_total,
                            waited=wait
                        )
                        raise PoolExhaustedError(
                            details={"pool": self.name, "max_total": self.max_total, "waited": wait}
                        )
                    self._available.wait(remaining)

            if pooled is None:
                obj = self._create_tracked(PooledObjectState.ACTIVE)
                self._metrics.record_pool_borrow(self.name, "ok")
                self._publish_gauges()
                return obj

            if self.test_on_borrow and not self._validate(pooled.obj):
                logger.info(
                    "Idle session failed validation on borrow",
                    stage="POOL.1.2",
                    pool=self.name
                )
                self._discard(pooled, reason="validation_failed")
                continue

            self._metrics.record_pool_borrow(self.name, "ok")
            logger.debug("Session borrowed", stage="POOL.1", pool=self.name, borrow_count=pooled.borrow_count)
            self._publish_gauges()
            return pooled.obj

    def return_(self, obj: T) -> None:
        """
        Hand a borrowed session back.

        STAGE-POOL.2: The session is passivated and re-idled. A session that
        fails passivation is destroyed and its slot freed instead.

        Raises:
            ValueError: If the session is not currently borrowed from this pool
        """
        with self._available:
            pooled = self._all.get(id(obj))
            if pooled is None or pooled.obj is not obj or pooled.state is not PooledObjectState.ACTIVE:
                raise ValueError(f"Session is not borrowed from pool '{self.name}'")
            closed = self._closed

        if closed:
            self._discard(pooled, reason="pool_closed")
            return

        try:
            self._factory.passivate(obj)
        except SessionInvalidError as e:
            logger.warning(
                "Returned session rejected by passivate",
                stage="POOL.2.1",
                pool=self.name,
                error=str(e)
            )
            self._discard(pooled, reason="passivate_failed")
            return

        with self._available:
            if self._closed:
                reinsert = False
            else:
                reinsert = True
                pooled.state = PooledObjectState.IDLE
                self._idle.appendleft(pooled)
                self._available.notify()

        if not reinsert:
            self._discard(pooled, reason="pool_closed")
            return

        logger.debug("Session returned", stage="POOL.2", pool=self.name)
        self._publish_gauges()

    def invalidate(self, obj: T) -> None:
        """
        Destroy a borrowed session without re-idling it.

        STAGE-POOL.3: Used when the session is suspected broken or is a
        dedicated subscription session being torn down.
        """
        with self._available:
            pooled = self._all.get(id(obj))
            if pooled is not None and pooled.obj is obj:
                self._forget(pooled)
                self._available.notify()
            else:
                pooled = None

        if pooled is None:
            logger.warning("Invalidating session unknown to pool", stage="POOL.3.1", pool=self.name)

        self._destroy_object(obj, reason="invalidated")
        logger.info("Session invalidated", stage="POOL.3", pool=self.name)
        self._publish_gauges()

    @contextmanager
    def session(self, timeout: float | None = None) -> Iterator[T]:
        """Borrow for the duration of a block; invalidate if the block raises."""
        obj = self.borrow(timeout)
        try:
            yield obj
        except Exception:
            self.invalidate(obj)
            raise
        else:
            self.return_(obj)

    # =========================================================================
    # Eviction
    # =========================================================================

    def evict(self) -> int:
        """
        Test idle sessions and destroy the ones that fail.

        STAGE-POOL.4: Eviction run

        Returns:
            Number of sessions destroyed
        """
        destroyed = 0
        if self.test_while_idle:
            with self._available:
                candidates = list(self._idle)

            for pooled in candidates:
                if self._validate(pooled.obj):
                    continue
                with self._available:
                    # A borrower may have taken it while it was being tested.
                    if pooled.state is not PooledObjectState.IDLE or pooled not in self._idle:
                        continue
                    self._idle.remove(pooled)
                    pooled.state = PooledObjectState.ACTIVE
                self._discard(pooled, reason="evicted")
                destroyed += 1

        if destroyed:
            logger.info("Evicted idle sessions", stage="POOL.4", pool=self.name, destroyed=destroyed)

        self.ensure_min_idle()
        return destroyed

    def ensure_min_idle(self) -> None:
        """Create idle sessions until min_idle is met or max_total is reached."""
        while True:
            with self._available:
                if self._closed:
                    return
                if len(self._idle) + self._creating >= self.min_idle:
                    return
                if len(self._all) + self._creating >= self.max_total:
                    return
                self._creating += 1

            self._create_tracked(PooledObjectState.IDLE)
            self._publish_gauges()

    def _run_evictor(self) -> None:
        while not self._stop_evictor.wait(self.eviction_interval):
            try:
                self.evict()
            except GatewayBaseError as e:
                logger.warning(
                    "Eviction run failed",
                    stage="POOL.4.1",
                    pool=self.name,
                    error=str(e),
                    error_type=type(e).__name__
                )

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> PoolStats:
        """Current occupancy snapshot."""
        with self._available:
            num_idle = len(self._idle)
            return PoolStats(
                name=self.name,
                max_total=self.max_total,
                min_idle=self.min_idle,
                num_active=len(self._all) - num_idle,
                num_idle=num_idle,
                created_count=self._created_count,
                destroyed_count=self._destroyed_count,
                closed=self._closed,
            )

    # =========================================================================
    # Internals
    # =========================================================================

    def _create_tracked(self, state: PooledObjectState) -> T:
        """Create a session for a slot already reserved in ``_creating``."""
        try:
            obj = self._factory.create()
        except Exception:
            with self._available:
                self._creating -= 1
                self._available.notify()
            raise

        with self._available:
            self._creating -= 1
            self._created_count += 1
            if self._closed:
                closed = True
            else:
                closed = False
                pooled = PooledObject(obj)
                self._all[id(obj)] = pooled
                if state is PooledObjectState.ACTIVE:
                    pooled.allocate()
                else:
                    self._idle.append(pooled)
                    self._available.notify()

        if closed:
            self._destroy_object(obj, reason="pool_closed")
            raise PoolClosedError(details={"pool": self.name})
        return obj

    def _validate(self, obj: T) -> bool:
        try:
            return self._factory.validate(obj)
        except Exception as e:
            logger.warning("Session validation raised", stage="POOL.1.3", pool=self.name, error=str(e))
            return False

    def _discard(self, pooled: PooledObject[T], reason: str) -> None:
        with self._available:
            self._forget(pooled)
            self._available.notify()
        self._destroy_object(pooled.obj, reason=reason)
        self._publish_gauges()

    def _forget(self, pooled: PooledObject[T]) -> None:
        # Caller holds the lock.
        if self._all.pop(id(pooled.obj), None) is not None:
            self._destroyed_count += 1
        pooled.state = PooledObjectState.INVALID

    def _destroy_object(self, obj: T, reason: str) -> None:
        self._metrics.record_pool_invalidation(self.name, reason)
        try:
            self._factory.destroy(obj)
        except Exception as e:
            logger.warning(
                "Session destroy failed",
                stage="POOL.3.2",
                pool=self.name,
                reason=reason,
                error=str(e)
            )

    def _publish_gauges(self) -> None:
        stats = self.stats()
        self._metrics.set_pool_sessions(self.name, stats.num_active, stats.num_idle)

"""
Delivery Cache

Bridges push-style broker delivery into pull-style retrieval. Transport
callback threads append; request threads drain.

Locking:
- one short map lock, taken only to create an entry lazily
- one lock per entry, so a drain on one destination never blocks
  delivery to another

Author: System Architect
Date: 2025-12-10
"""

import threading
from collections import deque

from pubsub_gateway.core.config.constants import DestinationKind


class _CacheEntry:
    """FIFO of delivered items for one (kind, destination) pair."""

    __slots__ = ("_items", "_lock")

    def __init__(self):
        self._items: deque[str] = deque()
        self._lock = threading.Lock()

    def append(self, item: str) -> None:
        with self._lock:
            self._items.append(item)

    def drain(self) -> list[str]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class DeliveryCache:
    """
    Per-destination FIFO store.

    Items appear in a drain in the order they were appended. Each item is
    returned by at most one drain. Entries are created on first delivery and
    never removed, only emptied.
    """

    def __init__(self):
        self._entries: dict[tuple[DestinationKind, str], _CacheEntry] = {}
        self._map_lock = threading.Lock()

    def append(self, kind: DestinationKind, destination: str, item: str) -> None:
        self._entry(kind, destination).append(item)

    def drain(self, kind: DestinationKind, destination: str) -> list[str]:
        """Remove and return everything queued for the destination; [] if unknown."""
        entry = self._entries.get((kind, destination))
        if entry is None:
            return []
        return entry.drain()

    def pending(self, kind: DestinationKind, destination: str) -> int:
        entry = self._entries.get((kind, destination))
        return len(entry) if entry is not None else 0

    def destinations(self) -> list[tuple[DestinationKind, str]]:
        with self._map_lock:
            return list(self._entries)

    def _entry(self, kind: DestinationKind, destination: str) -> _CacheEntry:
        key = (kind, destination)
        entry = self._entries.get(key)
        if entry is None:
            with self._map_lock:
                entry = self._entries.setdefault(key, _CacheEntry())
        return entry

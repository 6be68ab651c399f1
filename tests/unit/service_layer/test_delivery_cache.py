"""
Unit Tests for the Delivery Cache
"""

import threading

import pytest

from pubsub_gateway.application.services.delivery_cache import DeliveryCache
from pubsub_gateway.core.config.constants import DestinationKind

TOPIC = DestinationKind.TOPIC
QUEUE = DestinationKind.QUEUE


@pytest.mark.unit
class TestDeliveryCache:

    def test_second_drain_is_empty(self):
        cache = DeliveryCache()
        cache.append(TOPIC, "sensor/temperature", "25.5 C")

        assert cache.drain(TOPIC, "sensor/temperature") == ["25.5 C"]
        assert cache.drain(TOPIC, "sensor/temperature") == []

    def test_unknown_destination_drains_empty(self):
        assert DeliveryCache().drain(QUEUE, "nobody") == []

    def test_fifo_order(self):
        cache = DeliveryCache()
        for item in ("a", "b", "c"):
            cache.append(QUEUE, "q", item)

        assert cache.drain(QUEUE, "q") == ["a", "b", "c"]

    def test_kinds_are_separate_namespaces(self):
        cache = DeliveryCache()
        cache.append(TOPIC, "x", "from topic")
        cache.append(QUEUE, "x", "from queue")

        assert cache.drain(TOPIC, "x") == ["from topic"]
        assert cache.pending(QUEUE, "x") == 1

    def test_destinations_listed(self):
        cache = DeliveryCache()
        cache.append(TOPIC, "a", "1")
        cache.append(QUEUE, "b", "2")
        cache.drain(TOPIC, "a")

        assert set(cache.destinations()) == {(TOPIC, "a"), (QUEUE, "b")}

    def test_concurrent_appends_and_drains_lose_nothing(self):
        cache = DeliveryCache()
        drained = []
        producers_done = threading.Event()

        def produce(worker):
            for i in range(200):
                cache.append(QUEUE, "q", f"{worker}-{i}")

        def consume():
            while not producers_done.is_set():
                drained.extend(cache.drain(QUEUE, "q"))
            drained.extend(cache.drain(QUEUE, "q"))

        consumer = threading.Thread(target=consume)
        consumer.start()
        producers = [threading.Thread(target=produce, args=(w,)) for w in range(4)]
        for t in producers:
            t.start()
        for t in producers:
            t.join()
        producers_done.set()
        consumer.join()

        assert len(drained) == 800
        assert len(set(drained)) == 800
        for worker in range(4):
            own = [item for item in drained if item.startswith(f"{worker}-")]
            assert own == [f"{worker}-{i}" for i in range(200)]

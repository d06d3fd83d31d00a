import asyncio
import json

import pytest

from bites import events
from bites.events import EventBroker, event_stream, format_sse

real_get_redis = events.get_redis


class FakeRequest:
    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self):
        return self.disconnected


class FakeRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))


def test_format_sse():
    assert format_sse("new-order", {"id": 1}) == 'event: new-order\ndata: {"id": 1}\n\n'


def test_publish_reaches_subscribers():
    async def scenario():
        broker = EventBroker()
        first, second = broker.subscribe(), broker.subscribe()
        assert broker.publish("order-updated", {"id": 7}) == 2
        frames = [first.get_nowait(), second.get_nowait()]
        broker.unsubscribe(first)
        assert broker.publish("order-updated", {"id": 8}) == 1
        return frames, broker.subscriber_count

    frames, remaining = asyncio.run(scenario())
    assert frames[0] == frames[1] == format_sse("order-updated", {"id": 7})
    assert remaining == 1


def test_full_queue_drops_oldest_frame():
    async def scenario():
        broker = EventBroker(queue_size=2)
        queue = broker.subscribe()
        for n in range(3):
            broker.publish("tick", n)
        return [queue.get_nowait() for _ in range(queue.qsize())]

    assert asyncio.run(scenario()) == [format_sse("tick", 1), format_sse("tick", 2)]


def test_publish_from_worker_thread():
    async def scenario():
        broker = EventBroker()
        queue = broker.subscribe()
        sent = await asyncio.to_thread(broker.publish, "new-order", {"table": 4})
        frame = await asyncio.wait_for(queue.get(), timeout=1)
        return sent, frame

    sent, frame = asyncio.run(scenario())
    assert sent == 1
    assert frame == format_sse("new-order", {"table": 4})


def test_event_stream_frames_and_cleanup():
    broker = EventBroker()
    request = FakeRequest()

    async def scenario():
        stream = event_stream(request, event_broker=broker, keepalive=0.01)
        received = [await stream.__anext__()]
        received.append(await stream.__anext__())
        broker.publish("order-deleted", {"id": 3})
        received.append(await stream.__anext__())
        request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        return received

    received = asyncio.run(scenario())
    assert received[0] == ": connected\n\n"
    assert received[1] == ": ping\n\n"
    assert received[2] == format_sse("order-deleted", {"id": 3})
    assert broker.subscriber_count == 0


def test_notify_order_event_publishes_to_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(events, "get_redis", lambda: fake)

    assert events.notify_order_event("new-order", {"id": 1}) == 0
    assert fake.published == [("kitchen:orders", {"type": "new-order", "data": {"id": 1}})]


def test_publish_kitchen_event_without_redis():
    assert events.publish_kitchen_event("new-order", {"id": 1}) is False


def test_get_redis_unreachable(monkeypatch):
    monkeypatch.setattr(events, "redis_client", None)
    monkeypatch.setattr(events, "redis_retry_at", 0.0)
    monkeypatch.setattr(events.settings, "redis_url", "redis://127.0.0.1:1/0")
    assert real_get_redis() is None


class DownRedis:
    def __init__(self):
        self.connects = 0

    def from_url(self, url, **options):
        self.connects += 1
        return self

    def ping(self):
        raise events.redis.ConnectionError("connection refused")


def test_redis_outage_waits_before_reconnecting(monkeypatch):
    down = DownRedis()
    clock = [1000.0]
    monkeypatch.setattr(events, "get_redis", real_get_redis)
    monkeypatch.setattr(events, "redis_client", None)
    monkeypatch.setattr(events, "redis_retry_at", 0.0)
    monkeypatch.setattr(events.redis, "from_url", down.from_url)
    monkeypatch.setattr(events.time, "monotonic", lambda: clock[0])

    for _ in range(5):
        assert events.publish_kitchen_event("new-order", {"id": 1}) is False
    assert down.connects == 1

    clock[0] += events.REDIS_RETRY_SECONDS
    assert events.publish_kitchen_event("new-order", {"id": 1}) is False
    assert down.connects == 2


def test_failed_publish_drops_client(monkeypatch):
    class BrokenRedis:
        def publish(self, channel, message):
            raise events.redis.ConnectionError("connection reset")

    monkeypatch.setattr(events, "get_redis", real_get_redis)
    monkeypatch.setattr(events, "redis_client", BrokenRedis())
    monkeypatch.setattr(events, "redis_retry_at", 0.0)
    monkeypatch.setattr(events.time, "monotonic", lambda: 50.0)

    assert events.publish_kitchen_event("order-updated", {"id": 2}) is False
    assert events.redis_client is None
    assert events.redis_retry_at == 50.0 + events.REDIS_RETRY_SECONDS

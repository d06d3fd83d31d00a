"""
Realtime order notifications.

Events fan out two ways: to Server-Sent Events subscribers of this process
through `EventBroker`, and to the kitchen bridge over the Redis channel
`kitchen:orders`.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import redis
from fastapi import Request

from .settings import settings

logger = logging.getLogger(__name__)

KITCHEN_CHANNEL = "kitchen:orders"
QUEUE_SIZE = 100


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class EventBroker:
    """
    In-process pub/sub for SSE clients.

    Each subscriber gets a bounded queue bound to the event loop that
    created it. Publishing is safe from worker threads (sync route handlers);
    frames are handed to the owning loop. A full queue drops its oldest frame.
    """

    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[queue] = asyncio.get_running_loop()
        logger.info(f"SSE client subscribed ({len(self._subscribers)} connected)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if self._subscribers.pop(queue, None) is not None:
            logger.info(f"SSE client unsubscribed ({len(self._subscribers)} connected)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @staticmethod
    def _offer(queue: asyncio.Queue, frame: str) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(frame)

    def publish(self, event: str, data: Any) -> int:
        """Queue one frame for every subscriber; returns how many were reached."""
        frame = format_sse(event, data)
        try:
            current_loop = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        sent = 0
        for queue, loop in list(self._subscribers.items()):
            if loop is current_loop:
                self._offer(queue, frame)
            else:
                try:
                    loop.call_soon_threadsafe(self._offer, queue, frame)
                except RuntimeError:
                    # Owning loop is closed
                    self._subscribers.pop(queue, None)
                    continue
            sent += 1
        return sent


broker = EventBroker()


async def event_stream(
    request: Request,
    event_broker: EventBroker | None = None,
    keepalive: float | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for one client until it disconnects."""
    event_broker = event_broker or broker
    keepalive = keepalive if keepalive is not None else settings.sse_keepalive_seconds
    queue = event_broker.subscribe()
    try:
        yield ": connected\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                frame = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": ping\n\n"
                continue
            yield frame
    finally:
        event_broker.unsubscribe(queue)


# ============ REDIS (kitchen bridge) ============

redis_client: redis.Redis | None = None
redis_retry_at = 0.0
REDIS_RETRY_SECONDS = 30.0


def get_redis() -> redis.Redis | None:
    """Shared client, or None while Redis is down. Reconnects at most every REDIS_RETRY_SECONDS."""
    global redis_client, redis_retry_at
    if redis_client is None and time.monotonic() >= redis_retry_at:
        try:
            client = redis.from_url(settings.redis_url, socket_connect_timeout=1)
            client.ping()
            redis_client = client
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable at {settings.redis_url}: {e}")
            redis_retry_at = time.monotonic() + REDIS_RETRY_SECONDS
    return redis_client


def publish_kitchen_event(event: str, data: Any) -> bool:
    """Publish an order event for the kitchen bridge. Failures are logged, never raised."""
    global redis_client, redis_retry_at
    r = get_redis()
    if r is None:
        return False
    try:
        r.publish(KITCHEN_CHANNEL, json.dumps({"type": event, "data": data}, default=str))
        return True
    except redis.RedisError as e:
        logger.warning(f"Failed to publish {event} to {KITCHEN_CHANNEL}: {e}")
        redis_client = None
        redis_retry_at = time.monotonic() + REDIS_RETRY_SECONDS
        return False


def notify_order_event(event: str, payload: Any) -> int:
    """Broadcast an order event to SSE clients and the kitchen bridge."""
    sent = broker.publish(event, payload)
    publish_kitchen_event(event, payload)
    logger.info(f"Broadcast {event} to {sent} SSE client(s)")
    return sent

"""
Kitchen Bridge Microservice

Pushes kitchen order events to WebSocket clients (kitchen displays).
- REST endpoints keep an in-memory order board and broadcast every change
- Order events published by the POS API on Redis channel `kitchen:orders`
  are relayed as they arrive

Messages sent to clients are JSON: {"event": "newOrder" | "orderUpdate" | "deleteOrder", "data": ...}
"""
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from fastapi import Body, FastAPI, HTTPException, Response, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bites.events import KITCHEN_CHANNEL
from bites.settings import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

RETRY_SECONDS = 5

# POS API event type -> client event name
RELAYED_EVENTS = {
    "new-order": "newOrder",
    "order-updated": "orderUpdate",
    "order-deleted": "deleteOrder",
}


class ConnectionManager:
    """Connected kitchen displays; sockets that fail on send are dropped."""

    def __init__(self):
        self.active: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.active.discard(websocket)

    async def broadcast(self, event: str, data: Any) -> int:
        message = {"event": event, "data": data}
        dead_connections = set()
        sent = 0
        for websocket in list(self.active):
            try:
                await websocket.send_json(message)
                sent += 1
            except (WebSocketDisconnect, RuntimeError, OSError):
                dead_connections.add(websocket)
        if dead_connections:
            self.active -= dead_connections
            logger.info(f"Pruned {len(dead_connections)} dead connection(s)")
        return sent


manager = ConnectionManager()

# Order board; lives only as long as the process
orders: list[dict] = []
_last_id = 0


def new_order_id() -> str:
    """Millisecond timestamp, bumped when two orders land in the same millisecond."""
    global _last_id
    _last_id = max(int(time.time() * 1000), _last_id + 1)
    return str(_last_id)


async def relay_message(raw: str | bytes) -> bool:
    """Forward one Redis payload `{type, data}` to clients. Returns False when skipped."""
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring malformed message on {KITCHEN_CHANNEL}: {e}")
        return False

    if not isinstance(message, dict):
        return False
    event = RELAYED_EVENTS.get(message.get("type"))
    if event is None:
        logger.debug(f"Ignoring event type {message.get('type')!r}")
        return False

    sent = await manager.broadcast(event, message.get("data"))
    logger.info(f"Relayed {message['type']} as {event} to {sent} client(s)")
    return True


async def redis_listener():
    """Subscribe to Redis and broadcast to WebSocket clients."""
    while True:
        r = redis.from_url(settings.redis_url)
        pubsub = r.pubsub()
        try:
            await pubsub.subscribe(KITCHEN_CHANNEL)
            logger.info(f"Listening on {KITCHEN_CHANNEL}")

            async for message in pubsub.listen():
                if message["type"] == "message":
                    await relay_message(message["data"])

        except Exception as e:
            logger.error(f"Redis listener error: {e}", exc_info=True)
        finally:
            await pubsub.aclose()
            await r.aclose()
        await asyncio.sleep(RETRY_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Start Redis listener on startup
    task = asyncio.create_task(redis_listener())
    yield
    task.cancel()


app = FastAPI(title="Kitchen Bridge", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.kitchen_bridge_cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok", "connections": len(manager.active), "orders": len(orders)}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    client_host = websocket.client.host if websocket.client else "unknown"
    await manager.connect(websocket)
    logger.info(f"Kitchen display connected from {client_host} ({len(manager.active)} connected)")

    try:
        while True:
            # Clients only listen; incoming text keeps the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
        logger.info(f"Kitchen display disconnected from {client_host} ({len(manager.active)} connected)")


# ============ ORDER BOARD ============

@app.get("/api/v1/kitchenorders")
def list_orders() -> list[dict]:
    return orders


@app.post("/api/orders", status_code=201)
async def create_order(body: dict = Body(...)) -> JSONResponse:
    order = {**body, "id": new_order_id()}
    orders.append(order)
    await manager.broadcast("newOrder", order)
    return JSONResponse(status_code=201, content=order)


@app.put("/api/orders/{order_id}")
async def update_order(order_id: str, body: dict = Body(...)) -> dict:
    for order in orders:
        if order["id"] == order_id:
            order.update({**body, "id": order_id})
            await manager.broadcast("orderUpdate", order)
            return order
    raise HTTPException(status_code=404, detail="Order not found")


@app.delete("/api/orders/{order_id}", status_code=204)
async def delete_order(order_id: str) -> Response:
    orders[:] = [order for order in orders if order["id"] != order_id]
    await manager.broadcast("deleteOrder", order_id)
    return Response(status_code=204)

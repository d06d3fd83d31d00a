"""
Table orders, online cart checkout, the kitchen display and live events.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlmodel import Session, select

from . import models, order_service
from .db import get_session
from .events import broker, event_stream, notify_order_event
from .order_service import InvalidOrderError, InvalidTransitionError
from .permissions import Permissions
from .security import PermissionChecker

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_ticket(session: Session, ticket_id: str) -> models.KitchenTicket:
    try:
        parsed_id = int(ticket_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid order ID")
    ticket = session.get(models.KitchenTicket, parsed_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Kitchen order not found")
    return ticket


# ============ ORDERS ============

@router.post("/order")
def place_order(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ORDERS_CREATE))],
    body: Any = Body(None),
    session: Session = Depends(get_session),
) -> dict:
    """Waiter submission for a table: creates or extends the table's open order."""
    try:
        table, lines, price_cents = order_service.parse_table_order(body)
    except InvalidOrderError as e:
        logger.info(f"Rejected order from {current_user.username}: {e}")
        raise HTTPException(status_code=400, detail="Invalid request data")

    order, ticket, is_update = order_service.place_table_order(session, table, lines, price_cents)
    session.commit()
    session.refresh(order)
    session.refresh(ticket)

    order_data = order_service.serialize_order(order)
    notify_order_event("new-order", {
        "kitchenOrder": order_service.serialize_ticket(ticket),
        "order": order_data,
        "isUpdate": is_update,
    })
    logger.info(f"{'Updated' if is_update else 'Created'} order #{order.id} for table {table}")

    return {
        "success": True,
        "result": {
            "message": "Order updated" if is_update else "New order created",
            "order": order_data,
            "isUpdate": is_update,
        },
    }


@router.post("/orders", status_code=201)
def place_online_order(
    body: Any = Body(None),
    session: Session = Depends(get_session),
) -> dict:
    """Public checkout of an online cart."""
    raw_items = body.get("items") if isinstance(body, dict) else None
    if not raw_items:
        raise HTTPException(status_code=400, detail="Cart is empty or invalid request.")
    try:
        lines = order_service.parse_lines(raw_items, default_quantity=1)
    except InvalidOrderError:
        raise HTTPException(status_code=400, detail="Cart is empty or invalid request.")

    order = order_service.place_online_order(session, body.get("username"), lines)
    session.commit()
    session.refresh(order)
    logger.info(f"Online order #{order.id} placed by {order.username or 'guest'}")
    return {"message": "Order placed successfully!", "order": order_service.serialize_order(order)}


@router.get("/fetchorders")
def fetch_orders(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ORDERS_READ))],
    session: Session = Depends(get_session),
) -> list[dict]:
    rows = session.exec(
        select(models.OrderItem).order_by(models.OrderItem.created_at.desc(), models.OrderItem.id.desc())
    ).all()
    return [order_service.serialize_order_item(row) for row in rows]


@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ORDERS_READ))],
    session: Session = Depends(get_session),
) -> dict:
    order = session.get(models.Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    data = order_service.serialize_order(order)
    data["lines"] = [order_service.serialize_order_item(item) for item in order.items]
    data["tickets"] = [order_service.serialize_ticket(ticket) for ticket in order.tickets]
    return data


# ============ KITCHEN ============

@router.get("/kitchenorders")
def list_kitchen_orders(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ORDERS_READ))],
    session: Session = Depends(get_session),
    status: str | None = None,
) -> list[dict]:
    statement = select(models.KitchenTicket)
    if status:
        try:
            statement = statement.where(models.KitchenTicket.status == order_service.parse_status(status))
        except InvalidTransitionError as e:
            raise HTTPException(status_code=400, detail=str(e))
    statement = statement.order_by(models.KitchenTicket.created_at.desc(), models.KitchenTicket.id.desc())
    return [order_service.serialize_ticket(t) for t in session.exec(statement).all()]


@router.put("/kitchenorders/{ticket_id}")
def update_kitchen_order(
    ticket_id: str,
    status_update: models.KitchenStatusUpdate,
    current_user: Annotated[
        models.User, Depends(PermissionChecker(Permissions.KITCHEN_UPDATE, Permissions.ORDERS_UPDATE))
    ],
    session: Session = Depends(get_session),
) -> dict:
    """Move a kitchen ticket along pending → received → preparing → completed → served."""
    if not status_update.status:
        raise HTTPException(status_code=400, detail="Status is required")
    ticket = _get_ticket(session, ticket_id)

    try:
        new_status = order_service.parse_status(status_update.status)
        order = order_service.update_ticket_status(session, ticket, new_status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session.commit()
    session.refresh(ticket)
    payload = {
        "kitchenOrder": order_service.serialize_ticket(ticket),
        "order": order_service.serialize_order(order) if order else None,
    }
    notify_order_event("order-updated", payload)
    logger.info(f"Kitchen order #{ticket.id} is now {ticket.status.value} ({current_user.username})")
    return payload


@router.delete("/kitchenorders/{ticket_id}")
def delete_kitchen_order(
    ticket_id: str,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.KITCHEN_UPDATE))],
    session: Session = Depends(get_session),
) -> dict:
    ticket = _get_ticket(session, ticket_id)
    deleted_id = ticket.id
    order = order_service.delete_ticket(session, ticket)
    session.commit()

    payload = {"id": deleted_id, "order": None}
    if order:
        session.refresh(order)
        payload["order"] = order_service.serialize_order(order)
    notify_order_event("order-deleted", payload)
    logger.info(f"Kitchen order #{deleted_id} deleted by {current_user.username}")
    return {"success": True, **payload}


# ============ LIVE EVENTS ============

@router.get(
    "/events",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_events(
    request: Request,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ORDERS_READ))],
) -> StreamingResponse:
    """Server-Sent Events feed of order activity."""
    return StreamingResponse(
        event_stream(request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.post("/notify")
def notify(
    payload: models.NotifyPayload,
    current_user: Annotated[
        models.User, Depends(PermissionChecker(Permissions.ORDERS_UPDATE, Permissions.KITCHEN_UPDATE))
    ],
) -> JSONResponse:
    if not payload.type:
        raise HTTPException(status_code=400, detail="Missing type in payload")
    sent = broker.publish(payload.type, payload.data)
    return JSONResponse({"success": True, "sentTo": sent})

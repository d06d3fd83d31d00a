"""
Order placement and kitchen ticket lifecycle.

A table submission touches several tables at once: the open order for the
table, a kitchen ticket, one order item row per line, the order analytics
row and the stock ledger. Everything here stays inside the caller's session;
routes commit once and broadcast after the commit.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlmodel import Session, select

from . import models
from .inventory_service import deduct_inventory_for_items

logger = logging.getLogger(__name__)


class InvalidOrderError(ValueError):
    """Raised when an order submission fails validation."""


class InvalidTransitionError(ValueError):
    """Raised for a kitchen status change that moves backwards."""


@dataclass
class OrderLine:
    item_name: str
    quantity: int
    price_cents: int
    image_url: str | None = None


# ============ VALIDATION ============

def _positive_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _non_negative_int(value) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def parse_lines(raw_items, default_quantity: int | None = None) -> list[OrderLine]:
    """Parse `[{itemName, quantity, price_cents, imageUrl?}]` into order lines."""
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidOrderError("items must be a non-empty list")

    lines = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise InvalidOrderError("each item must be an object")
        name = raw.get("itemName")
        if not isinstance(name, str) or not name.strip():
            raise InvalidOrderError("itemName is required")
        quantity = raw.get("quantity", default_quantity)
        quantity = _positive_int(quantity)
        price_cents = _non_negative_int(raw.get("price_cents"))
        if quantity is None or price_cents is None:
            raise InvalidOrderError(f"invalid quantity or price for {name}")
        lines.append(OrderLine(name.strip(), quantity, price_cents, raw.get("imageUrl")))
    return lines


def parse_table_order(body: dict) -> tuple[int, list[OrderLine], int]:
    """Validate a waiter submission: `{table, items, price_cents}`."""
    if not isinstance(body, dict):
        raise InvalidOrderError("body must be an object")
    table = _positive_int(body.get("table"))
    price_cents = _non_negative_int(body.get("price_cents"))
    if table is None or price_cents is None:
        raise InvalidOrderError("table and price_cents are required")
    return table, parse_lines(body.get("items")), price_cents


# ============ HELPERS ============

def summarize_lines(lines: list[OrderLine]) -> tuple[int, int, str, int]:
    """Totals and top item (highest summed quantity, first seen wins ties)."""
    total_cents = sum(line.price_cents * line.quantity for line in lines)
    total_items = sum(line.quantity for line in lines)

    counts: dict[str, int] = {}
    for line in lines:
        counts[line.item_name] = counts.get(line.item_name, 0) + line.quantity

    top_name, top_count = "N/A", 0
    for name, count in counts.items():
        if count > top_count:
            top_name, top_count = name, count
    return total_cents, total_items, top_name, top_count


def merged_items(order_items: list[models.OrderItem]) -> list[dict]:
    """Order lines merged by item name, in first-seen order."""
    merged: dict[str, dict] = {}
    for item in sorted(order_items, key=lambda i: (i.created_at, i.id or 0)):
        if item.status == models.OrderStatus.cancelled:
            continue
        entry = merged.get(item.item_name)
        if entry:
            entry["quantity"] += item.quantity
        else:
            merged[item.item_name] = {
                "itemName": item.item_name,
                "quantity": item.quantity,
                "price_cents": item.price_cents,
            }
    return list(merged.values())


def find_open_order(session: Session, table_number: int) -> models.Order | None:
    return session.exec(
        select(models.Order)
        .where(
            models.Order.table_number == table_number,
            models.Order.source == models.OrderSource.table,
            models.Order.status.in_(models.OPEN_ORDER_STATUSES),
        )
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
    ).first()


def _menu_items_for(session: Session, lines: list[OrderLine]) -> list[tuple[models.MenuItem, int]]:
    resolved = []
    for line in lines:
        menu_item = session.exec(
            select(models.MenuItem).where(models.MenuItem.item_name == line.item_name)
        ).first()
        if menu_item:
            resolved.append((menu_item, line.quantity))
    return resolved


def _menu_item_id(session: Session, name: str) -> int | None:
    menu_item = session.exec(select(models.MenuItem).where(models.MenuItem.item_name == name)).first()
    return menu_item.id if menu_item else None


# ============ PLACEMENT ============

def place_table_order(
    session: Session,
    table_number: int,
    lines: list[OrderLine],
    price_cents: int,
) -> tuple[models.Order, models.KitchenTicket, bool]:
    """
    Create or extend the open order for a table.
    Returns (order, ticket, is_update). Does not commit.
    """
    now = datetime.now(timezone.utc)
    order = find_open_order(session, table_number)
    is_update = order is not None

    if order is None:
        order = models.Order(table_number=table_number, source=models.OrderSource.table, total_cents=price_cents)
    else:
        order.total_cents += price_cents
        order.updated_at = now
    session.add(order)
    session.flush()

    ticket = models.KitchenTicket(
        order_id=order.id,
        table_number=table_number,
        items=json.dumps([
            {"item_name": line.item_name, "quantity": line.quantity, "price_cents": line.price_cents}
            for line in lines
        ]),
        total_cents=price_cents,
        status=models.OrderStatus.pending,
    )
    session.add(ticket)
    session.flush()

    for line in lines:
        session.add(models.OrderItem(
            order_id=order.id,
            kitchen_ticket_id=ticket.id,
            menu_item_id=_menu_item_id(session, line.item_name),
            table_number=table_number,
            item_name=line.item_name,
            quantity=line.quantity,
            price_cents=line.price_cents,
            image_url=line.image_url,
            status=models.OrderStatus.pending,
        ))

    total_cents, total_items, top_name, top_count = summarize_lines(lines)
    analytics = session.exec(
        select(models.OrderAnalytics).where(models.OrderAnalytics.order_id == order.id)
    ).first()
    if analytics:
        # Merged submissions add to the totals and keep the original top item
        analytics.total_amount_cents += total_cents
        analytics.total_items_sold += total_items
        analytics.updated_at = now
    else:
        analytics = models.OrderAnalytics(
            order_id=order.id,
            total_amount_cents=total_cents,
            total_items_sold=total_items,
            top_item_name=top_name,
            top_item_count=top_count,
        )
    session.add(analytics)

    deduct_inventory_for_items(session, order.id, _menu_items_for(session, lines))

    return order, ticket, is_update


def place_online_order(session: Session, username: str | None, lines: list[OrderLine]) -> models.Order:
    """Create an order from an online cart. Does not commit."""
    total_cents, total_items, top_name, top_count = summarize_lines(lines)
    order = models.Order(username=username, source=models.OrderSource.online, total_cents=total_cents)
    session.add(order)
    session.flush()

    for line in lines:
        session.add(models.OrderItem(
            order_id=order.id,
            menu_item_id=_menu_item_id(session, line.item_name),
            item_name=line.item_name,
            quantity=line.quantity,
            price_cents=line.price_cents,
            image_url=line.image_url,
            status=models.OrderStatus.pending,
        ))

    session.add(models.OrderAnalytics(
        order_id=order.id,
        total_amount_cents=total_cents,
        total_items_sold=total_items,
        top_item_name=top_name,
        top_item_count=top_count,
    ))
    return order


# ============ KITCHEN ============

def parse_status(value) -> models.OrderStatus:
    try:
        return models.OrderStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidTransitionError(f"Invalid status: {value}")


def check_transition(current: models.OrderStatus, new: models.OrderStatus) -> bool:
    """
    True when the ticket must change, False for a no-op.
    Raises InvalidTransitionError for a backward or terminal move.
    """
    if current == new:
        return False
    if new == models.OrderStatus.cancelled:
        if current == models.OrderStatus.served:
            raise InvalidTransitionError("Cannot cancel a served order")
        return True
    if current == models.OrderStatus.cancelled:
        raise InvalidTransitionError("Cannot reopen a cancelled order")
    if models.KITCHEN_FLOW.index(new) < models.KITCHEN_FLOW.index(current):
        raise InvalidTransitionError(f"Cannot move order from {current.value} back to {new.value}")
    return True


def compute_order_status_from_tickets(tickets: list[models.KitchenTicket]) -> models.OrderStatus:
    """Compute order status from ticket statuses (single source of truth)."""
    if not tickets:
        return models.OrderStatus.pending

    live = [t.status for t in tickets if t.status != models.OrderStatus.cancelled]
    if not live:
        return models.OrderStatus.cancelled

    if all(s == models.OrderStatus.served for s in live):
        return models.OrderStatus.served
    if all(s in (models.OrderStatus.completed, models.OrderStatus.served) for s in live):
        return models.OrderStatus.completed
    if any(s in (models.OrderStatus.preparing, models.OrderStatus.completed) for s in live):
        return models.OrderStatus.preparing
    if any(s == models.OrderStatus.received for s in live):
        return models.OrderStatus.received
    return models.OrderStatus.pending


def _ticket_rows(session: Session, ticket: models.KitchenTicket) -> list[models.OrderItem]:
    return list(session.exec(
        select(models.OrderItem).where(models.OrderItem.kitchen_ticket_id == ticket.id)
    ).all())


def update_ticket_status(
    session: Session,
    ticket: models.KitchenTicket,
    new_status: models.OrderStatus,
) -> models.Order | None:
    """
    Move a ticket along the kitchen flow and sync its rows and parent order.
    Returns the parent order. Does not commit.
    """
    if not check_transition(ticket.status, new_status):
        return session.get(models.Order, ticket.order_id)

    now = datetime.now(timezone.utc)
    ticket.status = new_status
    ticket.updated_at = now
    session.add(ticket)

    for row in _ticket_rows(session, ticket):
        row.status = new_status
        session.add(row)

    order = session.get(models.Order, ticket.order_id)
    if order:
        session.flush()
        session.refresh(order)
        order.status = compute_order_status_from_tickets(order.tickets)
        order.updated_at = now
        session.add(order)
    return order


def delete_ticket(session: Session, ticket: models.KitchenTicket) -> models.Order | None:
    """Remove a ticket with its rows and take its value off the order. Does not commit."""
    rows = _ticket_rows(session, ticket)
    removed_cents = ticket.total_cents
    for row in rows:
        session.delete(row)

    order = session.get(models.Order, ticket.order_id)
    session.delete(ticket)
    session.flush()

    if order:
        session.refresh(order)
        order.total_cents = max(0, order.total_cents - removed_cents)
        order.status = compute_order_status_from_tickets(order.tickets)
        order.updated_at = datetime.now(timezone.utc)
        session.add(order)
    return order


# ============ SERIALIZATION ============

def serialize_order(order: models.Order) -> dict:
    return {
        "id": order.id,
        "tableNumber": order.table_number,
        "username": order.username,
        "source": order.source.value,
        "status": order.status.value,
        "price_cents": order.total_cents,
        "items": merged_items(order.items),
        "createdAt": order.created_at.isoformat(),
        "updatedAt": order.updated_at.isoformat(),
    }


def serialize_ticket(ticket: models.KitchenTicket) -> dict:
    return {
        "id": ticket.id,
        "orderId": ticket.order_id,
        "tableNumber": ticket.table_number,
        "items": [
            {"itemName": i["item_name"], "quantity": i["quantity"], "price_cents": i["price_cents"]}
            for i in ticket.item_list()
        ],
        "status": ticket.status.value,
        "timestamp": ticket.created_at.isoformat(),
    }


def serialize_order_item(item: models.OrderItem) -> dict:
    return {
        "id": item.id,
        "orderId": item.order_id,
        "kitchenTicketId": item.kitchen_ticket_id,
        "tableNumber": item.table_number,
        "itemName": item.item_name,
        "items": [{"itemName": f"{item.item_name} ({item.quantity})"}],
        "quantity": item.quantity,
        "price_cents": item.price_cents,
        "imageUrl": item.image_url,
        "status": item.status.value,
        "createdAt": item.created_at.isoformat(),
    }

"""
Inventory Service

Business logic for inventory management operations including:
- Manual stock in/out against the movement ledger
- Wastage recording
- Recipe-driven deduction when orders are placed
- Unit conversion
- Reporting queries
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlmodel import Session, func, select

from . import models
from .inventory_models import (
    InventoryItem,
    MenuRecipe,
    MovementType,
    StockMovement,
    Supplier,
    UnitOfMeasure,
    Wastage,
    convert_units,
)

logger = logging.getLogger(__name__)

REPORT_WINDOW_DAYS = 30
REPORT_TYPES = ("summary", "consumption", "wastage", "purchase", "ingredient-usage", "low-stock")


class InsufficientStockError(Exception):
    """Raised when a manual stock-out or wastage exceeds what is on hand"""
    def __init__(self, item_name: str, required: Decimal, available: Decimal):
        self.item_name = item_name
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough stock for {item_name}: needed {required}, available {available}"
        )


def get_recipe_for_menu_item(session: Session, menu_item_id: int) -> list[MenuRecipe]:
    """Get all recipe ingredients for a menu item"""
    statement = select(MenuRecipe).where(MenuRecipe.menu_item_id == menu_item_id)
    return list(session.exec(statement).all())


def convert_to_base_unit(
    quantity: Decimal,
    from_unit: UnitOfMeasure,
    item: InventoryItem
) -> Decimal:
    """Convert quantity to the item's stock unit"""
    if from_unit == item.unit:
        return quantity
    return convert_units(quantity, from_unit, item.unit)


def record_stock_movement(
    session: Session,
    inventory_item: InventoryItem,
    movement_type: MovementType,
    quantity: Decimal,
    price_cents: int | None = None,
    supplier_id: int | None = None,
    order_id: int | None = None,
    note: str | None = None,
    allow_negative: bool = False,
) -> StockMovement:
    """
    Adjust the running stock level and write the ledger row.
    Stock-outs beyond what is on hand raise unless `allow_negative`.
    """
    quantity = Decimal(quantity)
    if movement_type == MovementType.stock_in:
        new_quantity = inventory_item.quantity + quantity
    else:
        if quantity > inventory_item.quantity and not allow_negative:
            raise InsufficientStockError(inventory_item.name, quantity, inventory_item.quantity)
        new_quantity = inventory_item.quantity - quantity

    inventory_item.quantity = new_quantity
    inventory_item.updated_at = datetime.now(timezone.utc)
    session.add(inventory_item)

    movement = StockMovement(
        inventory_item_id=inventory_item.id,
        type=movement_type,
        quantity=quantity,
        price_cents=price_cents,
        supplier_id=supplier_id,
        order_id=order_id,
        note=note,
    )
    session.add(movement)
    return movement


def record_wastage(
    session: Session,
    inventory_item: InventoryItem,
    quantity: Decimal,
    reason: str = "spoilage",
    note: str | None = None,
) -> Wastage:
    """Log wasted stock and take it off the shelf."""
    quantity = Decimal(quantity)
    if quantity > inventory_item.quantity:
        raise InsufficientStockError(inventory_item.name, quantity, inventory_item.quantity)

    inventory_item.quantity = inventory_item.quantity - quantity
    inventory_item.updated_at = datetime.now(timezone.utc)
    session.add(inventory_item)

    wastage = Wastage(
        inventory_item_id=inventory_item.id,
        quantity=quantity,
        reason=reason,
        note=note,
    )
    session.add(wastage)
    return wastage


def deduct_inventory_for_items(
    session: Session,
    order_id: int,
    items: Iterable[tuple[models.MenuItem, int]],
) -> list[StockMovement]:
    """
    Consume recipe ingredients for (menu item, quantity) pairs of an order.
    Allows negative stock with warning logging.
    Called within the order placement transaction; does not commit.
    """
    movements = []

    for menu_item, quantity in items:
        for ingredient in get_recipe_for_menu_item(session, menu_item.id):
            inv_item = session.get(InventoryItem, ingredient.inventory_item_id)
            if not inv_item:
                continue

            # Quantity needed, with waste factor
            waste_multiplier = 1 + (Decimal(ingredient.waste_percentage) / 100)
            quantity_needed = Decimal(ingredient.quantity_required) * quantity * waste_multiplier

            try:
                quantity_in_base = convert_to_base_unit(quantity_needed, ingredient.unit, inv_item)
            except ValueError as e:
                logger.warning(f"Skipping ingredient {inv_item.name} for {menu_item.item_name}: {e}")
                continue

            if inv_item.quantity < quantity_in_base:
                logger.warning(
                    f"Low stock for {inv_item.name}: needed {quantity_in_base}, "
                    f"available {inv_item.quantity} (order #{order_id})"
                )

            movements.append(record_stock_movement(
                session=session,
                inventory_item=inv_item,
                movement_type=MovementType.stock_out,
                quantity=quantity_in_base,
                order_id=order_id,
                note=f"Order #{order_id} - {menu_item.item_name}",
                allow_negative=True,
            ))

    return movements


def get_low_stock_items(session: Session) -> list[InventoryItem]:
    """Get all items at or below reorder level"""
    statement = (
        select(InventoryItem)
        .where(InventoryItem.quantity <= InventoryItem.reorder_level)
        .order_by(InventoryItem.name)
    )
    return list(session.exec(statement).all())


# ============ SERIALIZATION ============

def serialize_item(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "unit": item.unit.value if item.unit else "piece",
        "sku": item.sku,
        "quantity": float(item.quantity),
        "reorderLevel": float(item.reorder_level),
        "maxCapacity": float(item.max_capacity),
        "isLowStock": item.quantity <= item.reorder_level,
        "supplierId": item.supplier_id,
        "supplier": serialize_supplier(item.supplier) if item.supplier else None,
        "variants": [
            {"id": v.id, "size": v.size, "quantity": float(v.quantity)}
            for v in item.variants
        ],
        "createdAt": item.created_at.isoformat(),
        "updatedAt": item.updated_at.isoformat(),
    }


def serialize_supplier(supplier: Supplier) -> dict:
    return {
        "id": supplier.id,
        "name": supplier.name,
        "contact": supplier.contact,
        "email": supplier.email,
        "phone": supplier.phone,
        "createdAt": supplier.created_at.isoformat(),
    }


def serialize_movement(session: Session, movement: StockMovement) -> dict:
    inv_item = session.get(InventoryItem, movement.inventory_item_id)
    supplier = session.get(Supplier, movement.supplier_id) if movement.supplier_id else None
    return {
        "id": movement.id,
        "inventoryItemId": movement.inventory_item_id,
        "itemName": inv_item.name if inv_item else None,
        "unit": inv_item.unit.value if inv_item else None,
        "type": movement.type.value,
        "quantity": float(movement.quantity),
        "price_cents": movement.price_cents,
        "supplierId": movement.supplier_id,
        "supplierName": supplier.name if supplier else None,
        "orderId": movement.order_id,
        "note": movement.note,
        "date": movement.date.isoformat(),
    }


def serialize_wastage(session: Session, wastage: Wastage) -> dict:
    inv_item = session.get(InventoryItem, wastage.inventory_item_id)
    return {
        "id": wastage.id,
        "inventoryItemId": wastage.inventory_item_id,
        "itemName": inv_item.name if inv_item else None,
        "unit": inv_item.unit.value if inv_item else None,
        "quantity": float(wastage.quantity),
        "reason": wastage.reason,
        "note": wastage.note,
        "date": wastage.date.isoformat(),
    }


# ============ REPORTS ============

def recent_movements(session: Session, limit: int = 20) -> list[dict]:
    statement = select(StockMovement).order_by(StockMovement.date.desc(), StockMovement.id.desc()).limit(limit)
    return [serialize_movement(session, m) for m in session.exec(statement).all()]


def _movements_since(session: Session, movement_type: MovementType, since: datetime) -> list[StockMovement]:
    statement = (
        select(StockMovement)
        .where(StockMovement.type == movement_type)
        .where(StockMovement.date >= since)
        .order_by(StockMovement.date.desc())
    )
    return list(session.exec(statement).all())


def ingredient_usage(session: Session, since: datetime) -> list[dict]:
    """Summed stock-out quantity per inventory item since a point in time"""
    statement = (
        select(StockMovement.inventory_item_id, func.sum(StockMovement.quantity))
        .where(StockMovement.type == MovementType.stock_out)
        .where(StockMovement.date >= since)
        .group_by(StockMovement.inventory_item_id)
    )
    usage = []
    for inventory_item_id, total in session.exec(statement).all():
        inv_item = session.get(InventoryItem, inventory_item_id)
        usage.append({
            "inventoryItemId": inventory_item_id,
            "name": inv_item.name if inv_item else None,
            "unit": inv_item.unit.value if inv_item else None,
            "totalUsed": float(total or 0),
        })
    usage.sort(key=lambda row: row["totalUsed"], reverse=True)
    return usage


def build_report(session: Session, report_type: str, now: datetime | None = None) -> list[dict]:
    """
    Build one of the inventory reports.
    Raises ValueError for an unknown report type.
    """
    if report_type not in REPORT_TYPES:
        raise ValueError(f"Invalid report type: {report_type}")

    since = (now or datetime.now(timezone.utc)) - timedelta(days=REPORT_WINDOW_DAYS)

    if report_type == "summary":
        items = session.exec(select(InventoryItem).order_by(InventoryItem.name)).all()
        return [
            {
                "id": item.id,
                "name": item.name,
                "sku": item.sku,
                "unit": item.unit.value,
                "quantity": float(item.quantity),
                "reorderLevel": float(item.reorder_level),
                "maxCapacity": float(item.max_capacity),
                "supplierName": item.supplier.name if item.supplier else None,
            }
            for item in items
        ]

    if report_type == "consumption":
        return [serialize_movement(session, m) for m in _movements_since(session, MovementType.stock_out, since)]

    if report_type == "purchase":
        return [serialize_movement(session, m) for m in _movements_since(session, MovementType.stock_in, since)]

    if report_type == "wastage":
        statement = select(Wastage).where(Wastage.date >= since).order_by(Wastage.date.desc())
        return [serialize_wastage(session, w) for w in session.exec(statement).all()]

    if report_type == "ingredient-usage":
        return ingredient_usage(session, since)

    return [serialize_item(item) for item in get_low_stock_items(session)]

"""
Inventory API Routes

- Inventory items (with size variants)
- Manual stock in/out and wastage
- Suppliers CRUD
- Reporting endpoints
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from . import models
from .db import get_session
from .inventory_models import (
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryVariant,
    MenuRecipe,
    StockInOut,
    StockMovement,
    Supplier,
    SupplierCreate,
    SupplierUpdate,
    Wastage,
    WastageCreate,
)
from .inventory_service import (
    InsufficientStockError,
    build_report,
    recent_movements,
    record_stock_movement,
    record_wastage,
    serialize_item,
    serialize_movement,
    serialize_supplier,
    serialize_wastage,
)
from .permissions import Permissions
from .security import PermissionChecker

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_item(session: Session, item_id: int) -> InventoryItem:
    item = session.get(InventoryItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


def _get_supplier(session: Session, supplier_id: int) -> Supplier:
    supplier = session.get(Supplier, supplier_id)
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return supplier


def _sku_taken(session: Session, sku: str, exclude_id: int | None = None) -> bool:
    statement = select(InventoryItem).where(InventoryItem.sku == sku)
    if exclude_id is not None:
        statement = statement.where(InventoryItem.id != exclude_id)
    return session.exec(statement).first() is not None


# ============ INVENTORY ITEMS ============

@router.get("/inventory")
def list_inventory(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_READ))],
    session: Session = Depends(get_session),
    type: str | None = None,
) -> list[dict]:
    """Items by default; `?type=suppliers` or `?type=transactions` for the other views."""
    if type == "suppliers":
        suppliers = session.exec(select(Supplier).order_by(Supplier.name)).all()
        return [serialize_supplier(s) for s in suppliers]

    if type == "transactions":
        return recent_movements(session, 20)

    items = session.exec(select(InventoryItem).order_by(InventoryItem.name)).all()
    return [serialize_item(item) for item in items]


@router.post("/inventory/items", status_code=201)
def create_inventory_item(
    item_create: InventoryItemCreate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    if _sku_taken(session, item_create.sku):
        raise HTTPException(status_code=400, detail="SKU already exists")
    if item_create.supplierId is not None:
        _get_supplier(session, item_create.supplierId)

    item = InventoryItem(
        name=item_create.name,
        category=item_create.category,
        unit=item_create.unit,
        sku=item_create.sku,
        quantity=item_create.quantity,
        reorder_level=item_create.reorderLevel,
        max_capacity=item_create.maxCapacity,
        supplier_id=item_create.supplierId,
    )
    session.add(item)
    session.flush()

    for variant in item_create.variants:
        session.add(InventoryVariant(inventory_item_id=item.id, size=variant.size, quantity=variant.quantity))

    session.commit()
    session.refresh(item)
    logger.info(f"Created inventory item {item.sku} ({item.name})")
    return serialize_item(item)


@router.put("/inventory/items/{item_id}")
def update_inventory_item(
    item_id: int,
    item_update: InventoryItemUpdate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    item = _get_item(session, item_id)
    update_data = item_update.model_dump(exclude_unset=True)

    if update_data.get("sku") and _sku_taken(session, update_data["sku"], exclude_id=item_id):
        raise HTTPException(status_code=400, detail="SKU already exists")
    if update_data.get("supplierId") is not None:
        _get_supplier(session, update_data["supplierId"])

    field_names = {"reorderLevel": "reorder_level", "maxCapacity": "max_capacity", "supplierId": "supplier_id"}
    for key, value in update_data.items():
        if value is None and key != "supplierId":
            continue
        setattr(item, field_names.get(key, key), value)

    item.updated_at = datetime.now(timezone.utc)
    session.add(item)
    session.commit()
    session.refresh(item)
    return serialize_item(item)


@router.delete("/inventory/items/{item_id}")
def delete_inventory_item(
    item_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    """Delete an item together with its variants, ledger rows and recipe lines."""
    item = _get_item(session, item_id)
    for table in (InventoryVariant, StockMovement, Wastage, MenuRecipe):
        for row in session.exec(select(table).where(table.inventory_item_id == item_id)).all():
            session.delete(row)
    session.delete(item)
    session.commit()
    logger.info(f"Deleted inventory item #{item_id}")
    return {"success": True, "id": item_id}


# ============ STOCK ============

@router.post("/inventory/stock", status_code=201)
def stock_in_out(
    movement_input: StockInOut,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    """Record a manual stock-in (purchase) or stock-out."""
    item = _get_item(session, movement_input.inventoryItemId)
    if movement_input.supplierId is not None:
        _get_supplier(session, movement_input.supplierId)

    try:
        movement = record_stock_movement(
            session=session,
            inventory_item=item,
            movement_type=movement_input.type,
            quantity=movement_input.quantity,
            price_cents=movement_input.price_cents,
            supplier_id=movement_input.supplierId,
            order_id=movement_input.orderId,
            note=movement_input.note,
        )
    except InsufficientStockError:
        raise HTTPException(status_code=400, detail="Cannot stock out more than available quantity")

    session.commit()
    session.refresh(movement)
    session.refresh(item)
    logger.info(f"Stock {movement.type.value} {movement.quantity} {item.unit.value} of {item.name}")
    return {"transaction": serialize_movement(session, movement), "item": serialize_item(item)}


@router.post("/inventory/wastage", status_code=201)
def add_wastage(
    wastage_input: WastageCreate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    item = _get_item(session, wastage_input.inventoryItemId)
    try:
        wastage = record_wastage(session, item, wastage_input.quantity, wastage_input.reason, wastage_input.note)
    except InsufficientStockError:
        raise HTTPException(status_code=400, detail="Cannot waste more than available quantity")

    session.commit()
    session.refresh(wastage)
    session.refresh(item)
    return {"wastage": serialize_wastage(session, wastage), "item": serialize_item(item)}


# ============ SUPPLIERS ============

@router.post("/inventory/suppliers", status_code=201)
def create_supplier(
    supplier_create: SupplierCreate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    supplier = Supplier(**supplier_create.model_dump())
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return serialize_supplier(supplier)


@router.put("/inventory/suppliers/{supplier_id}")
def update_supplier(
    supplier_id: int,
    supplier_update: SupplierUpdate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    supplier = _get_supplier(session, supplier_id)
    for key, value in supplier_update.model_dump(exclude_unset=True).items():
        if value is None and key in ("name", "contact"):
            continue
        setattr(supplier, key, value)
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return serialize_supplier(supplier)


@router.delete("/inventory/suppliers/{supplier_id}")
def delete_supplier(
    supplier_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    supplier = _get_supplier(session, supplier_id)
    has_items = session.exec(select(InventoryItem).where(InventoryItem.supplier_id == supplier_id)).first()
    if has_items:
        raise HTTPException(status_code=400, detail="Cannot delete supplier with associated inventory items")

    # Ledger rows keep the movement, not the vendor link
    for movement in session.exec(select(StockMovement).where(StockMovement.supplier_id == supplier_id)).all():
        movement.supplier_id = None
        session.add(movement)
    session.delete(supplier)
    session.commit()
    return {"success": True, "id": supplier_id}


# ============ REPORTS ============

@router.get("/inventory/reports")
def inventory_report(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_READ))],
    session: Session = Depends(get_session),
    type: str = "summary",
) -> dict:
    try:
        data = build_report(session, type)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid report type")
    return {"type": type, "data": data}

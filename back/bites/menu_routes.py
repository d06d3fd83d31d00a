"""
Menu, recipes (bill of materials) and the online cart.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import or_
from sqlmodel import Session, select

from . import models
from .db import get_session
from .inventory_models import InventoryItem, MenuRecipe, MenuRecipeUpdate
from .inventory_service import get_recipe_for_menu_item
from .permissions import Permissions
from .security import PermissionChecker
from .uploads import (
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_SIZE,
    remove_upload,
    save_menu_image,
    upload_url,
)

router = APIRouter()


def serialize_menu_item(item: models.MenuItem) -> dict:
    data = item.model_dump()
    data["image_url"] = upload_url("menu", item.image_filename)
    return data


def _get_menu_item(session: Session, item_id: int) -> models.MenuItem:
    item = session.get(models.MenuItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item


# ============ MENU ============

@router.get("/menu")
def list_menu(
    session: Session = Depends(get_session),
    category: str | None = None,
    veg: bool | None = None,
    search: str | None = None,
) -> list[dict]:
    """Public menu, ordered by category then name."""
    statement = select(models.MenuItem)
    if category:
        statement = statement.where(models.MenuItem.category == category)
    if veg is not None:
        statement = statement.where(models.MenuItem.is_veg == veg)
    if search:
        pattern = f"%{search}%"
        statement = statement.where(or_(
            models.MenuItem.item_name.ilike(pattern),
            models.MenuItem.description.ilike(pattern),
        ))
    statement = statement.order_by(models.MenuItem.category, models.MenuItem.item_name)
    return [serialize_menu_item(item) for item in session.exec(statement).all()]


@router.post("/menu", status_code=201)
def create_menu_item(
    item_create: models.MenuItemCreate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MENU_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    item = models.MenuItem(**item_create.model_dump())
    session.add(item)
    session.commit()
    session.refresh(item)
    return serialize_menu_item(item)


@router.put("/menu/{item_id}")
def update_menu_item(
    item_id: int,
    item_update: models.MenuItemUpdate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MENU_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    item = _get_menu_item(session, item_id)
    for key, value in item_update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(item, key, value)
    session.add(item)
    session.commit()
    session.refresh(item)
    return serialize_menu_item(item)


@router.delete("/menu/{item_id}")
def delete_menu_item(
    item_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MENU_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    item = _get_menu_item(session, item_id)
    for recipe in get_recipe_for_menu_item(session, item_id):
        session.delete(recipe)
    # Past order lines keep their name and price snapshot
    for order_item in session.exec(select(models.OrderItem).where(models.OrderItem.menu_item_id == item_id)).all():
        order_item.menu_item_id = None
        session.add(order_item)
    image_filename = item.image_filename
    session.delete(item)
    session.commit()
    remove_upload("menu", image_filename)
    return {"status": "deleted", "id": item_id}


@router.post("/menu/{item_id}/image")
async def upload_menu_image(
    item_id: int,
    file: Annotated[UploadFile, File()],
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MENU_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    """Upload an image for a menu item. Validates file type and size."""
    item = _get_menu_item(session, item_id)

    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
        )

    contents = await file.read()
    if len(contents) > MAX_IMAGE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Max size: {MAX_IMAGE_SIZE // (1024*1024)}MB"
        )

    old_filename = item.image_filename
    item.image_filename = save_menu_image(contents, file.content_type)
    session.add(item)
    session.commit()
    session.refresh(item)
    remove_upload("menu", old_filename)
    return serialize_menu_item(item)


# ============ RECIPES ============

@router.get("/menu/{item_id}/recipe")
def get_menu_recipe(
    item_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MENU_READ))],
    session: Session = Depends(get_session),
) -> dict:
    """Get recipe (BOM) for a menu item"""
    item = _get_menu_item(session, item_id)

    items = []
    for ri in get_recipe_for_menu_item(session, item_id):
        inv_item = session.get(InventoryItem, ri.inventory_item_id)
        items.append({
            "id": ri.id,
            "inventory_item_id": ri.inventory_item_id,
            "inventory_item_name": inv_item.name if inv_item else None,
            "inventory_item_unit": inv_item.unit.value if inv_item else None,
            "quantity_required": float(ri.quantity_required),
            "unit": ri.unit.value,
            "waste_percentage": float(ri.waste_percentage),
        })

    return {"menu_item_id": item_id, "item_name": item.item_name, "items": items}


@router.put("/menu/{item_id}/recipe")
def update_menu_recipe(
    item_id: int,
    recipe_update: MenuRecipeUpdate,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.INVENTORY_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    """Replace entire recipe for a menu item"""
    _get_menu_item(session, item_id)

    for existing in get_recipe_for_menu_item(session, item_id):
        session.delete(existing)

    for item_data in recipe_update.items:
        if not session.get(InventoryItem, item_data.inventory_item_id):
            raise HTTPException(
                status_code=404,
                detail=f"Inventory item {item_data.inventory_item_id} not found"
            )
        session.add(MenuRecipe(menu_item_id=item_id, **item_data.model_dump()))

    session.commit()
    return {"status": "updated", "menu_item_id": item_id, "items_count": len(recipe_update.items)}


# ============ CART ============

@router.post("/add-to-cart")
def add_to_cart(
    cart_item: models.AddToCart,
    session: Session = Depends(get_session),
) -> dict:
    item = models.CartItem(
        user_id=cart_item.userId,
        name=cart_item.itemName,
        price_cents=cart_item.price_cents,
        image_url=cart_item.imageUrl,
        quantity=1,
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    return {"success": True, "data": item.model_dump(mode="json")}

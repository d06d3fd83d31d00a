"""
Inventory Module Models

Back-office stock keeping:
- Unit of measure with automatic conversion
- Suppliers and item variants
- Stock in/out ledger and wastage log
- Menu recipes (bill of materials) driving order-time stock decrement
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Numeric
from sqlmodel import Field, Relationship, SQLModel

from .models import utcnow


# ============ ENUMS ============

class UnitOfMeasure(str, Enum):
    """Standard units of measure with conversion support"""
    # Count
    piece = "piece"

    # Weight (base: gram)
    gram = "gram"
    kilogram = "kilogram"
    ounce = "ounce"
    pound = "pound"

    # Volume (base: milliliter)
    milliliter = "milliliter"
    liter = "liter"
    fluid_ounce = "fluid_ounce"
    cup = "cup"
    gallon = "gallon"


# Unit conversion factors to base units (gram for weight, milliliter for volume)
UNIT_CONVERSIONS: dict[UnitOfMeasure, tuple[str, Decimal]] = {
    # (base_type, factor_to_base)
    UnitOfMeasure.piece: ("count", Decimal("1")),

    # Weight -> grams
    UnitOfMeasure.gram: ("weight", Decimal("1")),
    UnitOfMeasure.kilogram: ("weight", Decimal("1000")),
    UnitOfMeasure.ounce: ("weight", Decimal("28.3495")),
    UnitOfMeasure.pound: ("weight", Decimal("453.592")),

    # Volume -> milliliters
    UnitOfMeasure.milliliter: ("volume", Decimal("1")),
    UnitOfMeasure.liter: ("volume", Decimal("1000")),
    UnitOfMeasure.fluid_ounce: ("volume", Decimal("29.5735")),
    UnitOfMeasure.cup: ("volume", Decimal("236.588")),
    UnitOfMeasure.gallon: ("volume", Decimal("3785.41")),
}


def convert_units(
    quantity: Decimal,
    from_unit: UnitOfMeasure,
    to_unit: UnitOfMeasure
) -> Decimal:
    """
    Convert quantity from one unit to another.
    Raises ValueError if units are incompatible (e.g., weight to volume).
    """
    if from_unit == to_unit:
        return quantity

    from_type, from_factor = UNIT_CONVERSIONS[from_unit]
    to_type, to_factor = UNIT_CONVERSIONS[to_unit]

    if from_type != to_type:
        raise ValueError(
            f"Cannot convert between {from_type} ({from_unit.value}) "
            f"and {to_type} ({to_unit.value})"
        )

    # Convert: source -> base -> target
    base_quantity = quantity * from_factor
    return base_quantity / to_factor


class MovementType(str, Enum):
    """Direction of a stock movement"""
    stock_in = "in"    # Purchase / restock
    stock_out = "out"  # Manual issue or order consumption


# ============ CORE MODELS ============

class Supplier(SQLModel, table=True):
    """External vendors for inventory purchases."""
    __tablename__ = "supplier"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    contact: str = ""
    email: str | None = None
    phone: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    items: list["InventoryItem"] = Relationship(back_populates="supplier")


class InventoryItem(SQLModel, table=True):
    """
    Raw materials, ingredients, and supplies.
    `quantity` is the running stock level in `unit`, maintained by movements.
    """
    __tablename__ = "inventory_item"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    category: str = Field(default="ingredients", index=True)
    unit: UnitOfMeasure = Field(default=UnitOfMeasure.piece)
    sku: str = Field(unique=True, index=True)

    quantity: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 4))
    reorder_level: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 4))
    max_capacity: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 4))

    supplier_id: int | None = Field(default=None, foreign_key="supplier.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    supplier: Supplier | None = Relationship(back_populates="items")
    variants: list["InventoryVariant"] = Relationship(back_populates="inventory_item")


class InventoryVariant(SQLModel, table=True):
    __tablename__ = "inventory_variant"

    id: int | None = Field(default=None, primary_key=True)
    inventory_item_id: int = Field(foreign_key="inventory_item.id", index=True)
    size: str
    quantity: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 4))

    inventory_item: InventoryItem = Relationship(back_populates="variants")


class StockMovement(SQLModel, table=True):
    """
    Ledger of stock ins and outs.
    Quantity is always positive; `type` carries the direction.
    """
    __tablename__ = "stock_movement"

    id: int | None = Field(default=None, primary_key=True)
    inventory_item_id: int = Field(foreign_key="inventory_item.id", index=True)
    type: MovementType = Field(index=True)
    quantity: Decimal = Field(sa_type=Numeric(12, 4))
    price_cents: int | None = None
    supplier_id: int | None = Field(default=None, foreign_key="supplier.id")
    order_id: int | None = Field(default=None, foreign_key="order.id", index=True)
    note: str | None = None
    date: datetime = Field(default_factory=utcnow, index=True)


class Wastage(SQLModel, table=True):
    __tablename__ = "wastage"

    id: int | None = Field(default=None, primary_key=True)
    inventory_item_id: int = Field(foreign_key="inventory_item.id", index=True)
    quantity: Decimal = Field(sa_type=Numeric(12, 4))
    reason: str = "spoilage"
    note: str | None = None
    date: datetime = Field(default_factory=utcnow, index=True)


class MenuRecipe(SQLModel, table=True):
    """
    Bill of Materials - links menu items to inventory ingredients.
    Defines how much of each inventory item is consumed per dish sold.
    """
    __tablename__ = "menu_recipe"

    id: int | None = Field(default=None, primary_key=True)
    menu_item_id: int = Field(foreign_key="menu_item.id", index=True)
    inventory_item_id: int = Field(foreign_key="inventory_item.id", index=True)

    # Quantity of ingredient per dish, in `unit` (auto-converted to item's unit)
    quantity_required: Decimal = Field(sa_type=Numeric(12, 4))
    unit: UnitOfMeasure

    # Waste factor (e.g., 10% = Decimal("10.00") for trimming loss)
    waste_percentage: Decimal = Field(default=Decimal("0"), sa_type=Numeric(5, 2))


# ============ REQUEST/RESPONSE SCHEMAS ============

class VariantInput(SQLModel):
    size: str
    quantity: Decimal = Decimal("0")


class InventoryItemCreate(SQLModel):
    """Schema for creating an inventory item"""
    name: str
    category: str = "ingredients"
    unit: UnitOfMeasure = UnitOfMeasure.piece
    sku: str
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    reorderLevel: Decimal = Field(default=Decimal("0"), ge=0)
    maxCapacity: Decimal = Field(default=Decimal("0"), ge=0)
    supplierId: int | None = None
    variants: list[VariantInput] = []


class InventoryItemUpdate(SQLModel):
    """Schema for updating an inventory item"""
    name: str | None = None
    category: str | None = None
    unit: UnitOfMeasure | None = None
    sku: str | None = None
    quantity: Decimal | None = Field(default=None, ge=0)
    reorderLevel: Decimal | None = Field(default=None, ge=0)
    maxCapacity: Decimal | None = Field(default=None, ge=0)
    supplierId: int | None = None


class StockInOut(SQLModel):
    """Schema for a manual stock movement"""
    inventoryItemId: int
    type: MovementType
    quantity: Decimal = Field(gt=0)
    price_cents: int | None = Field(default=None, ge=0)
    supplierId: int | None = None
    note: str | None = None
    orderId: int | None = None


class WastageCreate(SQLModel):
    inventoryItemId: int
    quantity: Decimal = Field(gt=0)
    reason: str = "spoilage"
    note: str | None = None


class SupplierCreate(SQLModel):
    """Schema for creating a supplier"""
    name: str
    contact: str = ""
    email: str | None = None
    phone: str | None = None


class SupplierUpdate(SQLModel):
    """Schema for updating a supplier"""
    name: str | None = None
    contact: str | None = None
    email: str | None = None
    phone: str | None = None


class MenuRecipeItemCreate(SQLModel):
    """Schema for a single recipe ingredient"""
    inventory_item_id: int
    quantity_required: Decimal = Field(gt=0)
    unit: UnitOfMeasure
    waste_percentage: Decimal = Field(default=Decimal("0"), ge=0)


class MenuRecipeUpdate(SQLModel):
    """Schema for replacing a menu item's entire recipe"""
    items: list[MenuRecipeItemCreate]

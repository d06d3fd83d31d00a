import json
from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    pending = "pending"
    received = "received"
    preparing = "preparing"
    completed = "completed"  # Cooked, ready to serve
    served = "served"
    cancelled = "cancelled"


# Kitchen tickets walk the same lifecycle as the order they belong to
KitchenStatus = OrderStatus

KITCHEN_FLOW: list[OrderStatus] = [
    OrderStatus.pending,
    OrderStatus.received,
    OrderStatus.preparing,
    OrderStatus.completed,
    OrderStatus.served,
]

OPEN_ORDER_STATUSES = (OrderStatus.pending, OrderStatus.received)


class OrderSource(str, Enum):
    table = "table"
    online = "online"


class StaffStatus(str, Enum):
    active = "Active"
    inactive = "Inactive"


class AttendanceStatus(str, Enum):
    present = "Present"
    half_day = "Half Day"
    absent = "Absent"


# ============ ACCOUNTS & STAFF ============

class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str | None = Field(default=None, unique=True, index=True)
    name: str | None = None
    hashed_password: str
    role: str = Field(default="user", index=True)  # Always lowercase
    staff_id: int | None = Field(default=None, foreign_key="staff.id", index=True)
    token_version: int = Field(default=0)  # Bumped on logout / password reset
    created_at: datetime = Field(default_factory=utcnow)


class Staff(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    role: str
    phone: str = Field(unique=True, index=True)
    email: str | None = Field(default=None, index=True)
    photo_filename: str | None = None  # Stored in uploads/staff/
    joined_at: date
    status: StaffStatus = Field(default=StaffStatus.active, index=True)
    created_at: datetime = Field(default_factory=utcnow)

    attendance: list["StaffAttendance"] = Relationship(back_populates="staff")


class StaffAttendance(SQLModel, table=True):
    __tablename__ = "staff_attendance"
    __table_args__ = (UniqueConstraint("staff_id", "date"),)

    id: int | None = Field(default=None, primary_key=True)
    staff_id: int = Field(foreign_key="staff.id", index=True)
    date: date
    check_in: datetime | None = None
    check_out: datetime | None = None
    status: AttendanceStatus = Field(default=AttendanceStatus.present)

    staff: Staff = Relationship(back_populates="attendance")


# ============ MENU ============

class MenuItem(SQLModel, table=True):
    __tablename__ = "menu_item"

    id: int | None = Field(default=None, primary_key=True)
    item_name: str = Field(index=True)
    price_cents: int
    description: str = ""
    image_filename: str | None = None  # Stored in uploads/menu/
    category: str = Field(default="Mains", index=True)
    is_veg: bool = Field(default=True)
    is_available: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)


class CartItem(SQLModel, table=True):
    __tablename__ = "cart_item"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = Field(default=None, index=True)
    name: str
    price_cents: int
    quantity: int = Field(default=1)
    image_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


# ============ ORDERS ============

class Order(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    table_number: int | None = Field(default=None, index=True)
    username: str | None = Field(default=None, index=True)  # Online cart orders
    source: OrderSource = Field(default=OrderSource.table)
    status: OrderStatus = Field(default=OrderStatus.pending, index=True)
    total_cents: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    items: list["OrderItem"] = Relationship(back_populates="order")
    tickets: list["KitchenTicket"] = Relationship(back_populates="order")


class OrderItem(SQLModel, table=True):
    """One row per submitted line; the waiter/manager order list reads these."""
    __tablename__ = "order_item"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    kitchen_ticket_id: int | None = Field(default=None, foreign_key="kitchen_ticket.id", index=True)
    menu_item_id: int | None = Field(default=None, foreign_key="menu_item.id")
    table_number: int | None = None
    item_name: str
    quantity: int
    price_cents: int  # Snapshot of unit price at order time
    image_url: str | None = None
    status: OrderStatus = Field(default=OrderStatus.pending, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)

    order: Order = Relationship(back_populates="items")


class KitchenTicket(SQLModel, table=True):
    """Denormalized copy of one order submission for the kitchen display."""
    __tablename__ = "kitchen_ticket"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    table_number: int | None = None
    items: str = "[]"  # JSON: [{"item_name", "quantity", "price_cents"}]
    total_cents: int = 0  # Amount this submission added to the order
    status: OrderStatus = Field(default=OrderStatus.pending, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    order: Order = Relationship(back_populates="tickets")

    def item_list(self) -> list[dict]:
        return json.loads(self.items or "[]")


class OrderAnalytics(SQLModel, table=True):
    __tablename__ = "order_analytics"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", unique=True, index=True)
    total_amount_cents: int = Field(default=0)
    total_items_sold: int = Field(default=0)
    top_item_name: str = "N/A"
    top_item_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


# ============ CUSTOMERS & ASSISTANT ============

class CustomerContact(SQLModel, table=True):
    __tablename__ = "customer_contact"

    id: int | None = Field(default=None, primary_key=True)
    contact_no: str | None = Field(default=None, unique=True, index=True)
    email: str | None = Field(default=None, unique=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class RagDocument(SQLModel, table=True):
    __tablename__ = "rag_document"

    id: int | None = Field(default=None, primary_key=True)
    content: str
    embedding: str | None = None  # JSON list of floats
    source: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class RagQuery(SQLModel, table=True):
    __tablename__ = "rag_query"

    id: int | None = Field(default=None, primary_key=True)
    query: str
    retrieved_ids: str = ""  # Comma-separated RagDocument ids
    response: str
    created_at: datetime = Field(default_factory=utcnow)


# Request/Response Models
class UserRegister(SQLModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None


class UserLogin(SQLModel):
    username: str | None = None
    password: str | None = None
    role: str | None = None


class UserRead(SQLModel):
    id: int
    username: str
    email: str | None
    name: str | None
    role: str
    staff_id: int | None
    created_at: datetime


class UserReadWithPermissions(UserRead):
    permissions: list[str] = []


class UserUpdate(SQLModel):
    name: str | None = None
    role: str | None = None
    password: str | None = None


class ForgotPasswordRequest(SQLModel):
    email: str | None = None


class MenuItemCreate(SQLModel):
    item_name: str
    price_cents: int = Field(ge=0)
    description: str = ""
    category: str = "Mains"
    is_veg: bool = True
    is_available: bool = True


class MenuItemUpdate(SQLModel):
    item_name: str | None = None
    price_cents: int | None = Field(default=None, ge=0)
    description: str | None = None
    category: str | None = None
    is_veg: bool | None = None
    is_available: bool | None = None


class AddToCart(SQLModel):
    userId: int | None = None
    itemName: str
    price_cents: int = Field(ge=0)
    imageUrl: str | None = None


class KitchenStatusUpdate(SQLModel):
    status: str | None = None


class NotifyPayload(SQLModel):
    type: str | None = None
    data: dict | list | None = None


class CheckInOut(SQLModel):
    staffId: int | str | None = None


class CustomerContactCreate(SQLModel):
    contactNo: str | None = None
    email: str | None = None


class SendMessage(SQLModel):
    contactNo: str | None = None
    message: str | None = None


class AssistantPrompt(SQLModel):
    prompt: str | None = None

from enum import Enum
from typing import Set

from .models import User


class Permissions(str, Enum):
    # Orders
    ORDERS_READ = "orders:read"
    ORDERS_CREATE = "orders:create"
    ORDERS_UPDATE = "orders:update"

    # Menu
    MENU_READ = "menu:read"
    MENU_MANAGE = "menu:manage"  # Create, Update, Delete

    # Kitchen display
    KITCHEN_UPDATE = "kitchen:update"

    # Staff & attendance
    STAFF_READ = "staff:read"
    STAFF_MANAGE = "staff:manage"
    ATTENDANCE_MANAGE = "attendance:manage"

    # Inventory
    INVENTORY_READ = "inventory:read"
    INVENTORY_MANAGE = "inventory:manage"

    # Reports
    REPORTS_READ = "reports:read"

    # Customer messaging (SMS / email campaigns)
    MESSAGES_SEND = "messages:send"

    # Login accounts
    USERS_READ = "users:read"
    USERS_MANAGE = "users:manage"

    # AI assistant & documents
    ASSISTANT_USE = "assistant:use"


ALL_PERMISSIONS: frozenset[str] = frozenset(p.value for p in Permissions)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "superadmin": ALL_PERMISSIONS,
    "admin": ALL_PERMISSIONS,
    "manager": ALL_PERMISSIONS - {Permissions.USERS_MANAGE.value},
    "chef": frozenset({
        Permissions.ORDERS_READ.value,
        Permissions.KITCHEN_UPDATE.value,
        Permissions.MENU_READ.value,
        Permissions.INVENTORY_READ.value,
    }),
    "waiter": frozenset({
        Permissions.ORDERS_READ.value,
        Permissions.ORDERS_CREATE.value,
        Permissions.ORDERS_UPDATE.value,
        Permissions.MENU_READ.value,
    }),
    "cashier": frozenset({
        Permissions.ORDERS_READ.value,
        Permissions.ORDERS_CREATE.value,
        Permissions.MENU_READ.value,
        Permissions.REPORTS_READ.value,
    }),
    "user": frozenset(),
}
ROLE_PERMISSIONS["cook"] = ROLE_PERMISSIONS["chef"]


class PermissionService:
    @staticmethod
    def get_role_permissions(role: str | None) -> Set[str]:
        """Permissions granted to a role name; unknown roles get none."""
        return set(ROLE_PERMISSIONS.get((role or "").strip().lower(), frozenset()))

    @staticmethod
    def get_user_permissions(user: User) -> Set[str]:
        """Get all permissions for a user based on their role."""
        return PermissionService.get_role_permissions(user.role)

    @staticmethod
    def has_permission(user: User, required_permission: str) -> bool:
        """Check if user has specific permission."""
        return required_permission in PermissionService.get_user_permissions(user)

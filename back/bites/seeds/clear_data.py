"""
Delete operational data (orders, kitchen tickets, analytics, stock movements)
and uploaded staff photos. Accounts, staff, menu and inventory items are kept.

Usage:
    python -m bites.seeds.clear_data
"""

import shutil
from pathlib import Path

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, delete

from bites.db import engine
from bites.inventory_models import StockMovement, Wastage
from bites.models import CartItem, KitchenTicket, Order, OrderAnalytics, OrderItem, Staff
from bites.settings import settings

# Children before parents (foreign keys)
TABLES_TO_CLEAR = [
    StockMovement,
    Wastage,
    OrderAnalytics,
    OrderItem,
    KitchenTicket,
    Order,
    CartItem,
]


def clear_tables(session: Session) -> list[str]:
    """Delete every row of the operational tables in one transaction."""
    for table in TABLES_TO_CLEAR:
        session.exec(delete(table))
    # Photos are removed from disk separately
    session.exec(update(Staff).values(photo_filename=None))
    session.commit()
    return [table.__name__ for table in TABLES_TO_CLEAR]


def clear_staff_photos(uploads_dir: Path) -> int:
    staff_dir = Path(uploads_dir) / "staff"
    if not staff_dir.exists():
        return 0
    removed = 0
    for item in staff_dir.iterdir():
        if item.is_dir():
            shutil.rmtree(item)
        else:
            item.unlink()
        removed += 1
    return removed


def clear_all_data() -> None:
    print("🗑️  Starting data cleanup...")

    with Session(engine) as session:
        try:
            for name in clear_tables(session):
                print(f"✅ Cleared table: {name}")
        except SQLAlchemyError as e:
            session.rollback()
            print(f"❌ Error clearing tables: {e}")
            return

    try:
        removed = clear_staff_photos(settings.uploads_dir)
        print(f"✅ Removed {removed} staff photo(s).")
    except PermissionError:
        print("⚠️  Permission denied while cleaning up uploads. Please run 'sudo chown -R $USER:$USER back/uploads' on the host.")

    print("\n✨ Cleanup finished!")


if __name__ == "__main__":
    clear_all_data()

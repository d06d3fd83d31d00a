"""
Seed a small sample menu.
Items already on the menu (matched by name) are skipped.

Usage:
    python -m bites.seeds.menu
"""

from sqlmodel import Session, select

from bites.db import create_db_and_tables, engine
from bites.models import MenuItem

SAMPLE_MENU = [
    {"item_name": "Paneer Tikka", "price_cents": 24000, "category": "Starters", "is_veg": True,
     "description": "Chargrilled cottage cheese marinated in spiced yoghurt"},
    {"item_name": "Chicken 65", "price_cents": 26000, "category": "Starters", "is_veg": False,
     "description": "Crisp fried chicken tossed with curry leaves and chilli"},
    {"item_name": "Masala Dosa", "price_cents": 15000, "category": "Mains", "is_veg": True,
     "description": "Rice crepe filled with spiced potato, served with chutney and sambar"},
    {"item_name": "Butter Chicken", "price_cents": 32000, "category": "Mains", "is_veg": False,
     "description": "Tandoori chicken simmered in a tomato and butter gravy"},
    {"item_name": "Veg Biryani", "price_cents": 22000, "category": "Mains", "is_veg": True,
     "description": "Basmati rice layered with vegetables and whole spices"},
    {"item_name": "Gulab Jamun", "price_cents": 9000, "category": "Desserts", "is_veg": True,
     "description": "Milk dumplings soaked in rose syrup"},
    {"item_name": "Masala Chai", "price_cents": 5000, "category": "Drinks", "is_veg": True,
     "description": "Spiced milk tea"},
    {"item_name": "Fresh Lime Soda", "price_cents": 7000, "category": "Drinks", "is_veg": True,
     "description": "Sweet or salted"},
]


def seed_menu(session: Session) -> int:
    created = 0
    for entry in SAMPLE_MENU:
        existing = session.exec(select(MenuItem).where(MenuItem.item_name == entry["item_name"])).first()
        if existing:
            continue
        session.add(MenuItem(**entry))
        created += 1
    session.commit()
    return created


if __name__ == "__main__":
    create_db_and_tables()
    with Session(engine) as session:
        count = seed_menu(session)
    print(f"✅ Menu seeded: {count} new item(s)")

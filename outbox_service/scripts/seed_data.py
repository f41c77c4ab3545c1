# scripts/seed_data.py
import asyncio
from decimal import Decimal
from outbox_service.core.db import init_db, close_db
from outbox_service.core.log_config import setup_logging
from outbox_service.core.security import UserContext
from outbox_service.models.order import Restaurant, MenuItem
from outbox_service.services.catalog_service import add_menu_item, create_restaurant

SEED_USER = UserContext(username="seed-script")

MENU = [
    ("Paneer Wrap", Decimal("149.00")),
    ("Chili Paneer Rice", Decimal("199.00")),
    ("Cold Drink", Decimal("49.00")),
]


async def seed():
    rest = await Restaurant.get_or_none(name="Demo Restaurant")
    if rest is None:
        rest = await create_restaurant("Demo Restaurant", True, SEED_USER)
    print("Restaurant:", rest.id)

    for name, price in MENU:
        item = await MenuItem.get_or_none(restaurant_id=rest.id, name=name)
        if item is None:
            item = await add_menu_item(rest.id, name, price, True, SEED_USER)
        print("Menu item:", name, str(item.id))


async def main():
    setup_logging()
    await init_db()
    await seed()
    await close_db()

if __name__ == "__main__":
    asyncio.run(main())

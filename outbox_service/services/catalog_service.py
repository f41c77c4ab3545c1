from decimal import Decimal
from typing import Optional
from uuid import UUID

from outbox_service.core.security import UserContext
from outbox_service.events.dispatcher import DomainEventDispatcher
from outbox_service.models.order import MenuItem, Restaurant
from outbox_service.persistence.unit_of_work import UnitOfWork
from outbox_service.services.order_service import get_domain_event_dispatcher


async def create_restaurant(name: str, is_active: bool, user: UserContext,
                            dispatcher: Optional[DomainEventDispatcher] = None) -> Restaurant:
    """Creates a restaurant; saved through a UnitOfWork so the audit trail is stamped."""
    async with UnitOfWork(dispatcher or get_domain_event_dispatcher(), current_user=user) as uow:
        restaurant = uow.register_new(Restaurant(name=name, is_active=is_active))
        await uow.commit()
    return restaurant


async def add_menu_item(restaurant_id: UUID, name: str, price: Decimal, is_active: bool, user: UserContext,
                        dispatcher: Optional[DomainEventDispatcher] = None) -> MenuItem:
    """Adds a menu item to an existing restaurant."""
    async with UnitOfWork(dispatcher or get_domain_event_dispatcher(), current_user=user) as uow:
        restaurant = await Restaurant.get_or_none(id=restaurant_id).using_db(uow.connection)
        if not restaurant:
            raise LookupError(f"Restaurant with ID {restaurant_id} not found.")

        menu_item = uow.register_new(MenuItem(restaurant=restaurant, name=name, price=price, is_active=is_active))
        await uow.commit()
    return menu_item

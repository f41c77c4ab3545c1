from functools import lru_cache
from typing import List, Dict, Optional
from uuid import UUID

from outbox_service.core.security import UserContext
from outbox_service.events.dispatcher import DomainEventDispatcher
from outbox_service.events.outbox_handlers import build_domain_event_dispatcher
from outbox_service.models.order import Order, OrderItem, MenuItem, Restaurant, OrderStatus
from outbox_service.persistence.unit_of_work import UnitOfWork


@lru_cache(maxsize=None)
def get_domain_event_dispatcher() -> DomainEventDispatcher:
    """Process-wide dispatcher; its converters join whichever transaction is current."""
    return build_domain_event_dispatcher()


def _unit_of_work(user: UserContext, dispatcher: Optional[DomainEventDispatcher]) -> UnitOfWork:
    return UnitOfWork(dispatcher or get_domain_event_dispatcher(), current_user=user)


async def place_order(user: UserContext, restaurant_id: UUID, items: List[Dict],
                      dispatcher: Optional[DomainEventDispatcher] = None) -> Order:
    """
    Creates the Order and its lines in one transaction.
    The OrderPlaced event becomes an outbox row in that same transaction.
    """
    async with _unit_of_work(user, dispatcher) as uow:
        conn = uow.connection
        restaurant = await Restaurant.get_or_none(id=restaurant_id).using_db(conn)
        if not restaurant or not restaurant.is_active:
            raise ValueError("Restaurant not found or is inactive.")

        menu_item_ids = [UUID(str(it["menu_item_id"])) for it in items]
        menu_items = await MenuItem.filter(id__in=menu_item_ids, restaurant_id=restaurant_id, is_active=True).using_db(conn)
        menu_map = {str(m.id): m for m in menu_items}

        lines = []
        for it in items:
            mid_str = str(it["menu_item_id"])
            menu = menu_map.get(mid_str)
            if not menu:
                raise ValueError(f"Menu item {mid_str} not found or inactive.")
            lines.append((menu, int(it["quantity"])))

        order, order_items = Order.place(user.username, restaurant, lines)
        uow.register_new(order)
        for item in order_items:
            uow.register_new(item)
        await uow.commit()

    return order


async def get_order_by_id(order_id: UUID) -> Optional[Order]:
    """Fetches order details with items, including the menu item name/price."""
    # Pre-fetch related entities to minimize DB queries (N+1 avoidance)
    return await Order.get_or_none(id=order_id).prefetch_related('items', 'items__menu_item')


async def update_order_status(order_id: UUID, new_status: OrderStatus, user: UserContext,
                              dispatcher: Optional[DomainEventDispatcher] = None) -> Order:
    """
    Moves the order forward through its lifecycle.
    Cancellation is routed to cancel_order so the compensation event carries the items.
    """
    if new_status == OrderStatus.CANCELLED:
        return await cancel_order(order_id, user, dispatcher=dispatcher)

    async with _unit_of_work(user, dispatcher) as uow:
        order = await Order.get_or_none(id=order_id).using_db(uow.connection)
        if not order:
            raise LookupError("Order not found")

        order.change_status(new_status)
        uow.register_dirty(order)
        await uow.commit()

    return order


async def cancel_order(order_id: UUID, user: UserContext, reason: str = "Cancelled by customer.",
                       dispatcher: Optional[DomainEventDispatcher] = None) -> Order:
    """Cancels an order; the OrderCancelled event lists the items so consumers can restore stock."""
    async with _unit_of_work(user, dispatcher) as uow:
        conn = uow.connection
        order = await Order.get_or_none(id=order_id).using_db(conn)
        if not order:
            raise LookupError("Order not found")

        items = await OrderItem.filter(order_id=order.id).using_db(conn)
        order.cancel(items, reason=reason)
        uow.register_dirty(order)
        await uow.commit()

    return order

import json
import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import RecordingHandler
from outbox_service.core.security import UserContext
from outbox_service.events.dispatcher import DomainEventDispatcher
from outbox_service.events.order_events import OrderPlacedDomainEvent
from outbox_service.models.order import Order, OrderItem, OrderStatus, Restaurant
from outbox_service.models.outbox import OutboxMessage
from outbox_service.services.catalog_service import add_menu_item, create_restaurant
from outbox_service.services.order_service import (
    cancel_order,
    get_order_by_id,
    place_order,
    update_order_status,
)


async def _place(catalog, user):
    restaurant, wrap, drink = catalog
    return await place_order(user, restaurant.id, [
        {"menu_item_id": wrap.id, "quantity": 2},
        {"menu_item_id": drink.id, "quantity": 1},
    ])


async def _outbox_types():
    return [m.type for m in await OutboxMessage.all().order_by("occurred_on")]


# --- PLACE ---

@pytest.mark.asyncio
async def test_place_order_writes_order_and_outbox_row(catalog, user):
    order = await _place(catalog, user)

    stored = await get_order_by_id(order.id)
    assert stored.status == OrderStatus.PLACED
    assert stored.total_amount == Decimal("347.00")
    assert stored.created_by == "user-abc"
    assert len(stored.items) == 2

    (message,) = await OutboxMessage.all()
    assert message.type == "OrderPlacedIntegrationEvent"
    payload = json.loads(message.content)
    assert payload["order_id"] == str(order.id)
    assert payload["event_type"] == "order.placed.v1"
    assert len(payload["items"]) == 2
    assert order.domain_events == ()


@pytest.mark.asyncio
async def test_unknown_menu_item_rolls_back_everything(catalog, user):
    restaurant = catalog[0]

    with pytest.raises(ValueError, match="not found or inactive"):
        await place_order(user, restaurant.id, [{"menu_item_id": uuid4(), "quantity": 1}])

    assert await Order.all().count() == 0
    assert await OutboxMessage.all().count() == 0


@pytest.mark.asyncio
async def test_failed_event_handler_rolls_back_the_order(catalog, user):
    dispatcher = DomainEventDispatcher()
    dispatcher.register(OrderPlacedDomainEvent, RecordingHandler([], fail_on=OrderPlacedDomainEvent))
    restaurant, wrap, _ = catalog

    with pytest.raises(RuntimeError):
        await place_order(user, restaurant.id, [{"menu_item_id": wrap.id, "quantity": 1}], dispatcher=dispatcher)

    assert await Order.all().count() == 0
    assert await OrderItem.all().count() == 0


# --- STATUS / CANCEL ---

@pytest.mark.asyncio
async def test_successful_status_transition(catalog, user):
    order = await _place(catalog, user)

    updated = await update_order_status(order.id, OrderStatus.PREPARING, UserContext("kitchen"))

    assert updated.status == OrderStatus.PREPARING
    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.PREPARING
    assert stored.modified_by == "kitchen"
    assert stored.created_by == "user-abc"
    assert await _outbox_types() == ["OrderPlacedIntegrationEvent", "OrderStatusChangedIntegrationEvent"]


@pytest.mark.asyncio
async def test_compensation_event_on_cancellation(catalog, user):
    order = await _place(catalog, user)

    cancelled = await update_order_status(order.id, OrderStatus.CANCELLED, user)

    assert cancelled.status == OrderStatus.CANCELLED
    message = await OutboxMessage.get(type="OrderCancelledIntegrationEvent")
    payload = json.loads(message.content)
    assert payload["reason"] == "Cancelled by customer."
    assert len(payload["items"]) == 2


@pytest.mark.asyncio
async def test_rejection_of_final_state_transition(catalog, user):
    order = await _place(catalog, user)
    await update_order_status(order.id, OrderStatus.DELIVERED, user)
    outbox_rows = await OutboxMessage.all().count()

    with pytest.raises(ValueError) as excinfo:
        await update_order_status(order.id, OrderStatus.PREPARING, user)

    assert "final state" in str(excinfo.value)
    assert (await Order.get(id=order.id)).status == OrderStatus.DELIVERED
    assert await OutboxMessage.all().count() == outbox_rows


@pytest.mark.asyncio
async def test_cancel_out_for_delivery_is_rejected(catalog, user):
    order = await _place(catalog, user)
    await update_order_status(order.id, OrderStatus.OUT_FOR_DELIVERY, user)

    with pytest.raises(ValueError):
        await cancel_order(order.id, user, reason="Changed my mind")


@pytest.mark.asyncio
async def test_missing_order(db, user):
    with pytest.raises(LookupError, match="Order not found"):
        await update_order_status(uuid4(), OrderStatus.PREPARING, user)
    with pytest.raises(LookupError, match="Order not found"):
        await cancel_order(uuid4(), user)


# --- CATALOG ---

@pytest.mark.asyncio
async def test_catalog_writes_are_audited(db, user):
    restaurant = await create_restaurant("Spice Route", True, user)
    item = await add_menu_item(restaurant.id, "Masala Dosa", Decimal("99.00"), True, user)

    assert (await Restaurant.get(id=restaurant.id)).created_by == "user-abc"
    assert item.created_by == "user-abc"
    assert await OutboxMessage.all().count() == 0


@pytest.mark.asyncio
async def test_menu_item_for_missing_restaurant(db, user):
    with pytest.raises(LookupError):
        await add_menu_item(uuid4(), "Ghost Dish", Decimal("1.00"), True, user)

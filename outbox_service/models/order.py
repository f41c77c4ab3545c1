from decimal import Decimal
from enum import Enum
from typing import List, Tuple
from tortoise import fields, models
import uuid

from outbox_service.models.base import AggregateRoot, AuditableEntity
from outbox_service.events.order_events import (
    OrderCancelledDomainEvent,
    OrderLine,
    OrderPlacedDomainEvent,
    OrderStatusChangedDomainEvent,
)


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


FINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class Restaurant(AuditableEntity):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    is_active = fields.BooleanField(default=True)

    class Meta:
        table = "restaurants"
        indexes = [
            ("is_active",),  # For filtering active restaurants
        ]


class MenuItem(AuditableEntity):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="menu_items")
    name = fields.CharField(max_length=255)
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    is_active = fields.BooleanField(default=True)

    class Meta:
        table = "menu_items"
        indexes = [
            ("restaurant_id",),  # Fast restaurant menu queries
            ("restaurant_id", "is_active"),  # Composite: restaurant's active items
        ]


class Order(AggregateRoot, AuditableEntity):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    user_id = fields.CharField(max_length=64)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="orders")
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PLACED)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)

    class Meta:
        table = "orders"
        indexes = [
            ("restaurant_id",),          # Restaurant order queries
            ("status",),                 # Status-based filtering
            ("user_id",),                # User order history
            ("created_at",),             # Time-based queries
        ]

    @classmethod
    def place(cls, user_id: str, restaurant: Restaurant, lines: List[Tuple[MenuItem, int]]) -> Tuple["Order", List["OrderItem"]]:
        """
        Builds a new order with its lines and raises OrderPlaced.
        Nothing is saved here; the caller registers the returned objects with a UnitOfWork.
        """
        if not lines:
            raise ValueError("Order must contain items.")

        order = cls(user_id=user_id, restaurant=restaurant, status=OrderStatus.PLACED)
        items = []
        total = Decimal("0")
        for menu, qty in lines:
            if qty <= 0:
                raise ValueError(f"Quantity for menu item {menu.id} must be positive.")
            line_total = menu.price * qty
            total += line_total
            items.append(OrderItem(
                order_id=order.id,  # order is not saved yet, so reference it by key
                menu_item=menu,
                quantity=qty,
                unit_price=menu.price,
                line_total=line_total,
            ))
        order.total_amount = total

        order.add_domain_event(OrderPlacedDomainEvent(
            order_id=order.id,
            user_id=user_id,
            restaurant_id=restaurant.id,
            total_amount=total,
            items=[OrderLine(menu_item_id=item.menu_item_id, quantity=item.quantity) for item in items],
        ))
        return order, items

    def change_status(self, new_status: OrderStatus):
        # Block status updates if the order is in a final, irreversible state.
        if self.status in FINAL_STATUSES:
            raise ValueError(f"Order is already in a final state: {self.status}. Status cannot be updated.")
        if new_status == OrderStatus.CANCELLED:
            raise ValueError("Use cancel() to cancel an order.")

        old_status = self.status
        self.status = new_status
        self.add_domain_event(OrderStatusChangedDomainEvent(
            order_id=self.id,
            user_id=self.user_id,
            old_status=old_status.value,
            new_status=new_status.value,
        ))

    def cancel(self, items: List["OrderItem"], reason: str = "Cancelled by customer."):
        # Cannot cancel if already completed or out for delivery
        if self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.OUT_FOR_DELIVERY):
            raise ValueError(f"Cannot cancel order in status {self.status}")

        self.status = OrderStatus.CANCELLED
        self.add_domain_event(OrderCancelledDomainEvent(
            order_id=self.id,
            user_id=self.user_id,
            reason=reason,
            items=[OrderLine(menu_item_id=item.menu_item_id, quantity=item.quantity) for item in items],
        ))


class OrderItem(AuditableEntity):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="order_items")
    quantity = fields.IntField()
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2)
    line_total = fields.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        table = "order_items"
        indexes = [
            ("order_id",),              # Order line items
            ("menu_item_id",),          # Menu item popularity
        ]

# outbox_service/models/__init__.py
from .base import AggregateRoot, AuditableEntity
from .order import Order, OrderItem, OrderStatus, Restaurant, MenuItem
from .outbox import OutboxMessage

# Export all models
__all__ = [
    "AggregateRoot",
    "AuditableEntity",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OutboxMessage",
    "Restaurant",
    "MenuItem"
]

from decimal import Decimal
from typing import List
from uuid import UUID
from pydantic import BaseModel, ConfigDict, model_validator

from outbox_service.events.domain_event import DomainEvent


class OrderLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    menu_item_id: UUID
    quantity: int


class _OrderDomainEvent(DomainEvent):
    """Fills the aggregate tag from order_id so callers only pass business fields."""
    aggregate_type: str = "Order"
    aggregate_id: str = ""

    order_id: UUID
    user_id: str

    @model_validator(mode="before")
    @classmethod
    def _fill_aggregate_id(cls, data):
        if isinstance(data, dict) and not data.get("aggregate_id") and data.get("order_id"):
            data = {**data, "aggregate_id": str(data["order_id"])}
        return data


class OrderPlacedDomainEvent(_OrderDomainEvent):
    event_type: str = "OrderPlaced"

    restaurant_id: UUID
    total_amount: Decimal
    items: List[OrderLine]


class OrderStatusChangedDomainEvent(_OrderDomainEvent):
    event_type: str = "OrderStatusChanged"

    old_status: str
    new_status: str


class OrderCancelledDomainEvent(_OrderDomainEvent):
    event_type: str = "OrderCancelled"

    reason: str
    items: List[OrderLine]

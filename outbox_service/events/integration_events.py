import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List
from pydantic import BaseModel, Field

from outbox_service.events.order_events import OrderLine


class IntegrationEvent(BaseModel):
    """
    Cross-service message stored in the outbox and published to the broker.
    Carries primitives only so any consumer can deserialize it from JSON.
    """
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    occurred_on: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: str = ""

    @classmethod
    def event_name(cls) -> str:
        # Stored as OutboxMessage.type and sent as the AMQP 'type' property
        return cls.__name__


class OrderPlacedIntegrationEvent(IntegrationEvent):
    event_type: str = "order.placed.v1"

    order_id: uuid.UUID
    user_id: str
    restaurant_id: uuid.UUID
    total_amount: Decimal
    items: List[OrderLine]


class OrderStatusChangedIntegrationEvent(IntegrationEvent):
    event_type: str = "order.status_changed.v1"

    order_id: uuid.UUID
    user_id: str
    old_status: str
    new_status: str


class OrderCancelledIntegrationEvent(IntegrationEvent):
    event_type: str = "order.cancelled.v1"

    order_id: uuid.UUID
    user_id: str
    reason: str
    items: List[OrderLine]

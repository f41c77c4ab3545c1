from pydantic import BaseModel, Field
from typing import List
import uuid
from decimal import Decimal

from outbox_service.models.order import OrderStatus


class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., gt=0)

class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    restaurant_id: uuid.UUID
    items: List[OrderItemRequest]

class OrderPlacementResponse(BaseModel):
    """Response schema for a placed or updated order."""
    order_id: uuid.UUID
    status: OrderStatus
    total_amount: Decimal
    message: str

class OrderStatusUpdate(BaseModel):
    """Schema for updating an order status."""
    status: OrderStatus

class OrderCancelRequest(BaseModel):
    reason: str = Field("Cancelled by customer.", max_length=255)

class OrderItemResponse(BaseModel):
    """Schema for an item inside the detailed order response."""
    name: str
    quantity: int
    price: str  # Use string for Decimal type serialization

class OrderDetailResponse(BaseModel):
    """Schema for fetching detailed order information."""
    id: uuid.UUID
    status: OrderStatus
    total_amount: Decimal
    items: List[OrderItemResponse]
    created_at: str
    created_by: str

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from outbox_service.core.security import UserContext, get_current_user
from outbox_service.schemas.response import SuccessResponse
from outbox_service.services.order_service import place_order, get_order_by_id, update_order_status, cancel_order
from outbox_service.schemas.order import (
    OrderCancelRequest,
    OrderDetailResponse,
    OrderPlacementResponse,
    OrderRequest,
    OrderStatusUpdate,
)
from typing import Optional
from uuid import UUID

router = APIRouter()
log = logging.getLogger("api.orders")


@router.post("/", status_code=status.HTTP_202_ACCEPTED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest, user: UserContext = Depends(get_current_user)):
    """
    Places a new order. Returns 202 Accepted because downstream services react to the published event.
    """
    if not request_data.items:
        raise HTTPException(status_code=400, detail="Order must contain items.")

    items_data = [
        {"menu_item_id": str(item.menu_item_id), "quantity": item.quantity}
        for item in request_data.items
    ]
    try:
        order = await place_order(user=user, restaurant_id=request_data.restaurant_id, items=items_data)
    except ValueError as e:
        log.error(f"Value error placing order: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    log.info(f"Order {order.id} placed successfully for user {user.username}.")
    data = OrderPlacementResponse(
        order_id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        message="Order Accepted and is being processed."
    ).model_dump()
    return SuccessResponse(data=data)


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID):
    """Fetches details for a specific order."""
    order = await get_order_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    items = [
        {"name": i.menu_item.name, "quantity": i.quantity, "price": str(i.unit_price)}
        for i in order.items
    ]
    data = OrderDetailResponse(
        id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        items=items,
        created_at=str(order.created_at),
        created_by=order.created_by or "",
    ).model_dump()
    return SuccessResponse(data=data)


@router.patch("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(order_id: UUID, payload: OrderStatusUpdate, user: UserContext = Depends(get_current_user)):
    """
    Updates status (e.g. 'PREPARING', 'OUT_FOR_DELIVERY', 'DELIVERED').
    """
    try:
        order = await update_order_status(order_id, payload.status, user)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        log.error(f"Value error updating order status: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    data = OrderPlacementResponse(
        order_id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        message=f"Order status successfully updated to {order.status.value}"
    ).model_dump()
    return SuccessResponse(data=data)


@router.post("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order_endpoint(order_id: UUID, payload: Optional[OrderCancelRequest] = None,
                                user: UserContext = Depends(get_current_user)):
    """
    Cancels the order; the cancellation event is published for inventory restoration.
    """
    payload = payload or OrderCancelRequest()
    try:
        order = await cancel_order(order_id, user, reason=payload.reason)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        log.error(f"Value error cancelling order: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    data = OrderPlacementResponse(
        order_id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        message="Order cancelled. Inventory restoration queued."
    ).model_dump()
    return SuccessResponse(data=data)

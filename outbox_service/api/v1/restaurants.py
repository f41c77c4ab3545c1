import logging
from fastapi import APIRouter, Depends, HTTPException, status
from outbox_service.core.security import UserContext, get_current_user
from outbox_service.schemas.catalog import MenuItemRequest, RestaurantRequest
from outbox_service.schemas.response import SuccessResponse
from outbox_service.services.catalog_service import add_menu_item, create_restaurant
from uuid import UUID

log = logging.getLogger("api.restaurants")

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def add_restaurant(restaurant_data: RestaurantRequest, user: UserContext = Depends(get_current_user)):
    """
    Creates a new restaurant record.
    """
    restaurant = await create_restaurant(restaurant_data.name, restaurant_data.is_active, user)
    return SuccessResponse(data={
        "message": f"Restaurant '{restaurant.name}' created successfully.",
        "restaurant_id": str(restaurant.id)
    })


@router.post("/{restaurant_id}/items", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def add_restaurant_item(restaurant_id: UUID, item_data: MenuItemRequest, user: UserContext = Depends(get_current_user)):
    """
    Adds a new menu item to a specified restaurant.
    """
    try:
        menu_item = await add_menu_item(restaurant_id, item_data.name, item_data.price, item_data.is_active, user)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    log.info(f"Menu item {menu_item.id} added to restaurant {restaurant_id}.")
    return SuccessResponse(data={
        "message": f"Successfully added '{item_data.name}'.",
        "menu_item_id": str(menu_item.id)
    })

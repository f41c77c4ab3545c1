from decimal import Decimal
from pydantic import BaseModel, Field


class RestaurantRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Name of the restaurant.")
    is_active: bool = Field(True, description="Whether the restaurant is currently active.")

class MenuItemRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Name of the menu item (e.g., Chicken Biryani).")
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Selling price of the item.")
    is_active: bool = Field(True, description="Whether the menu item is active.")

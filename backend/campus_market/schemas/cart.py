"""
Pydantic schemas for the buyer's cart.
"""

from datetime import datetime
from pydantic import BaseModel, Field

from campus_market.schemas.booking import MAX_QUANTITY


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=MAX_QUANTITY)


class CartItemUpdate(BaseModel):
    # Zero or less removes the item
    quantity: int = Field(..., le=MAX_QUANTITY)


class CartItemResponse(BaseModel):
    product_id: int
    title: str
    price: float
    quantity: int
    seller_id: int
    seller_name: str
    seller_email: str

    model_config = {"from_attributes": True}


class CartResponse(BaseModel):
    id: int
    buyer_id: int
    items: list[CartItemResponse]
    total_price: float
    updated_at: datetime

    model_config = {"from_attributes": True}

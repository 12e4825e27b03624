"""
Pydantic schemas for booking-related request/response validation.

Empty line items, a missing total and non-positive quantities are checked by
the booking service (400), not here, so the message can name the field.
Type and range errors here are also answered with 400 by the bookings router.
Upper bounds match the column precision of the booking tables.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from campus_market.services.snapshot import LineItemRequest

# Numeric(10, 2), Numeric(12, 2) and INTEGER
MAX_UNIT_PRICE = 99_999_999.99
MAX_TOTAL_PRICE = 9_999_999_999.99
MAX_QUANTITY = 2_147_483_647


class BookingItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, le=MAX_QUANTITY)
    price: Optional[float] = Field(default=None, ge=0, le=MAX_UNIT_PRICE)

    def to_request(self) -> LineItemRequest:
        return LineItemRequest(
            product_id=self.product_id,
            quantity=self.quantity,
            price=self.price,
        )


class BookingCreate(BaseModel):
    line_items: list[BookingItemCreate] = Field(default_factory=list)
    total_price: Optional[float] = Field(default=None, le=MAX_TOTAL_PRICE)


class BookingItemResponse(BaseModel):
    product_id: int
    title: str
    unit_price: float
    quantity: int
    seller_id: int
    seller_name: str
    seller_email: str

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    buyer_id: int
    buyer_name: str
    buyer_email: str
    items: list[BookingItemResponse]
    total_price: float
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCancelResponse(BaseModel):
    message: str
    booking: BookingResponse


class BookingStatusUpdate(BaseModel):
    status: Literal["Dispatched", "Delivered"]

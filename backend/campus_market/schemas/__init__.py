from campus_market.schemas.user import UserCreate, UserResponse, UserLogin, Token
from campus_market.schemas.product import (
    ProductCreate, ProductUpdate, ProductStatusUpdate, ProductResponse, ProductListResponse,
)
from campus_market.schemas.booking import (
    BookingItemCreate, BookingCreate, BookingItemResponse, BookingResponse,
    BookingCancelResponse, BookingStatusUpdate,
)
from campus_market.schemas.cart import CartItemAdd, CartItemUpdate, CartItemResponse, CartResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "ProductCreate", "ProductUpdate", "ProductStatusUpdate", "ProductResponse",
    "ProductListResponse",
    "BookingItemCreate", "BookingCreate", "BookingItemResponse", "BookingResponse",
    "BookingCancelResponse", "BookingStatusUpdate",
    "CartItemAdd", "CartItemUpdate", "CartItemResponse", "CartResponse",
]

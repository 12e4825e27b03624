from campus_market.models.user import User, UserRole
from campus_market.models.product import Product, ProductStatus
from campus_market.models.booking import Booking, BookingItem, BookingStatus
from campus_market.models.cart import Cart, CartItem

__all__ = [
    "User", "UserRole",
    "Product", "ProductStatus",
    "Booking", "BookingItem", "BookingStatus",
    "Cart", "CartItem",
]

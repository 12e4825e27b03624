"""
Cart endpoints. The client books the cart's line items via POST /bookings/.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.db.session import get_db
from campus_market.models.user import User
from campus_market.schemas.cart import CartItemAdd, CartItemUpdate, CartResponse
from campus_market.services.cart_service import (
    add_to_cart,
    clear_cart,
    get_or_create_cart,
    remove_cart_item,
    update_cart_item,
)
from campus_market.core.security import get_current_user, get_current_user_id

router = APIRouter(prefix="/cart", tags=["Cart"])


@router.get("/", response_model=CartResponse)
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's cart, creating an empty one on first use."""
    return await get_or_create_cart(db, user)


@router.post("/items", response_model=CartResponse)
async def add_cart_item(
    item_data: CartItemAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add an approved, in-stock product. Adding it again increases the quantity."""
    return await add_to_cart(db, user, item_data.product_id, item_data.quantity)


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_item(
    product_id: int,
    item_data: CartItemUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await update_cart_item(db, user_id, product_id, item_data.quantity)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_item(
    product_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await remove_cart_item(db, user_id, product_id)


@router.delete("/", response_model=CartResponse)
async def clear(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await clear_cart(db, user_id)

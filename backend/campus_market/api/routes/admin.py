"""
Admin endpoints: product moderation and booking fulfilment.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.db.session import get_db
from campus_market.models.user import User
from campus_market.schemas.booking import BookingResponse, BookingStatusUpdate
from campus_market.schemas.product import ProductResponse, ProductStatusUpdate
from campus_market.services.booking_service import advance_booking_status
from campus_market.services.cache_service import invalidate_product_cache
from campus_market.services.product_service import list_pending_products, set_product_status
from campus_market.core.security import require_admin

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/products/pending", response_model=list[ProductResponse])
async def pending_products(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Listings waiting for moderation, oldest first."""
    return await list_pending_products(db)


@router.put("/products/{product_id}/status", response_model=ProductResponse)
async def moderate_product(
    product_id: int,
    status_data: ProductStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await set_product_status(db, product_id, status_data.status)
    await db.commit()
    await invalidate_product_cache()
    return product


@router.put("/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    status_data: BookingStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Advance fulfilment: Booked -> Dispatched -> Delivered."""
    return await advance_booking_status(db, booking_id, status_data.status)

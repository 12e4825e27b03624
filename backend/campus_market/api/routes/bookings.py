"""
Booking endpoints with concurrency-safe stock reservation.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.api.routing import BadRequestRoute
from campus_market.db.session import get_db
from campus_market.models.user import User
from campus_market.schemas.booking import BookingCreate, BookingResponse, BookingCancelResponse
from campus_market.services.booking_service import (
    cancel_booking,
    create_booking,
    get_booking_for_reader,
    get_seller_bookings,
    get_user_bookings,
)
from campus_market.services.cache_service import invalidate_product_cache
from campus_market.services.interfaces.notifier import Notifier
from campus_market.services.notification_service import (
    notify_booking_cancelled,
    notify_booking_created,
)
from campus_market.services.notifier_factory import get_notifier
from campus_market.core.security import get_current_user, get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"], route_class=BadRequestRoute)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Book one or more products, possibly from different sellers.

    Either every line item is reserved and the booking is recorded, or
    nothing changes. Returns 409 naming the product when stock is short.
    Buyer, seller and admin e-mails are sent after the response.
    """
    booking = await create_booking(
        db,
        user_id,
        [item.to_request() for item in booking_data.line_items],
        booking_data.total_price,
    )
    response = BookingResponse.model_validate(booking)
    # Quantities changed, listings may now hide sold-out products
    await invalidate_product_cache()
    background_tasks.add_task(notify_booking_created, notifier, response)
    return response


@router.get("/mine", response_model=list[BookingResponse])
async def list_my_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings made by the authenticated user, newest first."""
    return await get_user_bookings(db, user_id)


@router.get("/sold", response_model=list[BookingResponse])
async def list_sold_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get bookings that contain the authenticated user's products."""
    return await get_seller_bookings(db, user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a booking. Visible to its buyer, its sellers and admins."""
    return await get_booking_for_reader(db, booking_id, user)


@router.put("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel a booking and release stock back to its products."""
    booking = await cancel_booking(db, booking_id, user_id)
    response = BookingResponse.model_validate(booking)
    await invalidate_product_cache()
    background_tasks.add_task(notify_booking_cancelled, notifier, response)
    return BookingCancelResponse(message="Booking cancelled.", booking=response)

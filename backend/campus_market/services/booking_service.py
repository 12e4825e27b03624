"""
Booking service: the transaction engine and the lifecycle manager.

CREATE: one transaction per attempt
===================================

  1. Load the buyer (snapshot source for name/email)
  2. Conditionally decrement every line item, in submitted order
     (see inventory_service for why this cannot oversell)
  3. Re-read the products and build immutable line-item snapshots
  4. Insert the booking and its items
  5. Commit

  Any error before the commit rolls the whole attempt back, so a failure at
  line item k also undoes the decrements of items 1..k-1. Stock conflicts are
  final and surface as 409 immediately. Storage-level conflicts
  (serialization failures, deadlocks, lock timeouts) are retried up to
  BOOKING_MAX_ATTEMPTS times with linear backoff before surfacing as a
  retryable 409. Other database errors are not retried: out-of-range values
  become a 400, anything else propagates.

CANCEL: strict status change, advisory restoration
==================================================

  The status change is a compare-and-set on a non-terminal status, so two
  concurrent cancels cannot both restore stock. Stock restoration runs after
  the status commit, one committed increment per line item; a product that
  was deleted meanwhile is skipped and a failing restore is logged. Neither
  fails the cancellation.

Notifications are not sent from here. Callers schedule them after this
service has committed (see notification_service).
"""

import asyncio
import time
from dataclasses import asdict
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import DataError, DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.core.config import get_settings
from campus_market.core.exceptions import (
    AppError,
    AuthorizationError,
    BookingConflictError,
    InvalidStateError,
    NotFoundError,
    StockConflictError,
    ValidationError,
)
from campus_market.core.logging import get_logger
from campus_market.core.metrics import (
    booking_cancellations,
    booking_latency,
    db_retries,
    record_booking_attempt,
    record_stock_restoration,
)
from campus_market.db.base import utcnow
from campus_market.models.booking import (
    FULFILMENT_TRANSITIONS,
    TERMINAL_STATUSES,
    Booking,
    BookingItem,
    BookingStatus,
)
from campus_market.models.user import User, UserRole
from campus_market.services.interfaces.inventory import InventoryStore
from campus_market.services.inventory_service import SqlInventoryStore
from campus_market.services.snapshot import (
    LineItemRequest,
    PricePolicy,
    build_line_items,
    resolve_total,
)

logger = get_logger(__name__)
settings = get_settings()


# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_storage_conflict(exc: DBAPIError) -> bool:
    """
    True for write conflicts worth retrying: PostgreSQL serialization
    failures, deadlocks and lock timeouts, or an OperationalError such as
    SQLite's "database is locked". Constraint and data errors are not.
    """
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate:
        return sqlstate in RETRYABLE_SQLSTATES
    return isinstance(exc, OperationalError)


def _failure_outcome(exc: AppError) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, (StockConflictError, BookingConflictError)):
        return "conflict"
    return "invalid"


def validate_booking_request(
    line_items: Sequence[LineItemRequest],
    claimed_total: Optional[float],
) -> None:
    if not line_items:
        raise ValidationError("line_items is required and must not be empty")
    for index, item in enumerate(line_items):
        if item.quantity is None or item.quantity < 1:
            raise ValidationError(f"line_items[{index}].quantity must be at least 1")
    if claimed_total is None or claimed_total <= 0:
        raise ValidationError("total_price is required and must be greater than 0")


async def create_booking(
    db: AsyncSession,
    buyer_id: int,
    line_items: Sequence[LineItemRequest],
    claimed_total: Optional[float],
    inventory: Optional[InventoryStore] = None,
) -> Booking:
    """
    Reserve stock for every line item and record the booking, all or nothing.
    Returns the committed booking with its items loaded.
    """
    try:
        validate_booking_request(line_items, claimed_total)
    except ValidationError as exc:
        record_booking_attempt("invalid")
        logger.warning("booking_rejected", buyer_id=buyer_id, reason=exc.message)
        raise

    inventory = inventory or SqlInventoryStore(db)
    policy = PricePolicy(settings.BOOKING_PRICE_POLICY)

    for attempt in range(1, settings.BOOKING_MAX_ATTEMPTS + 1):
        start_time = time.perf_counter()
        try:
            booking = await _reserve_and_record(
                db, inventory, buyer_id, line_items, claimed_total, policy
            )
            await db.commit()
        except AppError as exc:
            await db.rollback()
            record_booking_attempt(_failure_outcome(exc))
            logger.warning(
                "booking_failed",
                buyer_id=buyer_id,
                reason=exc.message,
                attempt=attempt,
            )
            raise
        except DBAPIError as exc:
            await db.rollback()
            if not is_storage_conflict(exc):
                logger.error(
                    "booking_db_error",
                    buyer_id=buyer_id,
                    attempt=attempt,
                    error=str(exc.orig),
                )
                if isinstance(exc, DataError):
                    # e.g. a claimed price overflowing the column precision
                    record_booking_attempt("invalid")
                    raise ValidationError("line item price or total_price is out of range") from exc
                record_booking_attempt("error")
                raise
            db_retries.inc()
            logger.info(
                "booking_retry",
                buyer_id=buyer_id,
                attempt=attempt,
                reason="storage_conflict",
                error=str(exc.orig),
            )
            if attempt == settings.BOOKING_MAX_ATTEMPTS:
                record_booking_attempt("conflict")
                raise BookingConflictError(
                    "Booking failed due to concurrent access. Please try again."
                ) from exc
            await asyncio.sleep(settings.BOOKING_RETRY_BACKOFF_SECONDS * attempt)
            continue
        except Exception:
            await db.rollback()
            record_booking_attempt("error")
            logger.exception("booking_error", buyer_id=buyer_id, attempt=attempt)
            raise
        finally:
            booking_latency.observe(time.perf_counter() - start_time)

        record_booking_attempt("success")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            buyer_id=buyer_id,
            items=len(booking.items),
            total_price=booking.total_price,
            attempt=attempt,
        )
        return booking

    # Unreachable: the last attempt either returns or raises
    raise BookingConflictError("Booking failed due to concurrent access. Please try again.")


async def _reserve_and_record(
    db: AsyncSession,
    inventory: InventoryStore,
    buyer_id: int,
    line_items: Sequence[LineItemRequest],
    claimed_total: float,
    policy: PricePolicy,
) -> Booking:
    buyer = await db.get(User, buyer_id)
    if buyer is None:
        raise NotFoundError("Buyer not found")

    for item in line_items:
        if not await inventory.conditional_decrement(item.product_id, item.quantity):
            raise await inventory.shortage_error(item.product_id, item.quantity)

    products = await inventory.find_many_by_id(item.product_id for item in line_items)
    snapshots = build_line_items(line_items, products, policy)
    total_price = resolve_total(
        snapshots, claimed_total, policy, settings.BOOKING_PRICE_TOLERANCE
    )

    booking = Booking(
        buyer_id=buyer.id,
        buyer_name=buyer.name,
        buyer_email=buyer.email,
        total_price=total_price,
        status=BookingStatus.BOOKED.value,
        items=[
            BookingItem(position=position, **asdict(snapshot))
            for position, snapshot in enumerate(snapshots)
        ],
    )
    db.add(booking)
    await db.flush()
    return booking


async def _load_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Get a single booking with its line items."""
    booking = await _load_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


async def get_booking_for_reader(db: AsyncSession, booking_id: int, reader: User) -> Booking:
    """
    Get a booking if `reader` may see it: its buyer, the seller of any of
    its line items, or an admin.
    """
    booking = await get_booking(db, booking_id)
    if (
        reader.role == UserRole.ADMIN.value
        or booking.buyer_id == reader.id
        or reader.id in booking.seller_ids
    ):
        return booking
    logger.warning("booking_read_denied", booking_id=booking_id, user_id=reader.id)
    raise AuthorizationError("Not authorized to view this booking")


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings made by a buyer, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.buyer_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def get_seller_bookings(db: AsyncSession, seller_id: int) -> list[Booking]:
    """Get bookings containing at least one of the seller's products, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.items.any(BookingItem.seller_id == seller_id))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    inventory: Optional[InventoryStore] = None,
) -> Booking:
    """
    Cancel a booking on behalf of its buyer and return stock to the products.
    """
    booking = await get_booking(db, booking_id)

    if booking.buyer_id != user_id:
        logger.warning("booking_cancel_denied", booking_id=booking_id, user_id=user_id)
        raise AuthorizationError("Not authorized to cancel this booking")

    if booking.status in TERMINAL_STATUSES:
        raise InvalidStateError(f"Cannot cancel a booking that is {booking.status}")

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.notin_(sorted(TERMINAL_STATUSES)))
        .values(status=BookingStatus.CANCELLED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Lost the race against another cancel or a delivery
        await db.rollback()
        raise InvalidStateError("Booking can no longer be cancelled")
    await db.commit()
    booking_cancellations.inc()

    # Plain tuples: a failed restore rolls back and expires ORM state
    to_restore = [(item.product_id, item.quantity) for item in booking.items]
    await _restore_inventory(db, inventory or SqlInventoryStore(db), booking_id, to_restore)

    logger.info("booking_cancelled", booking_id=booking_id, user_id=user_id)
    return await get_booking(db, booking_id)


async def _restore_inventory(
    db: AsyncSession,
    inventory: InventoryStore,
    booking_id: int,
    to_restore: list[tuple[int, int]],
) -> None:
    for product_id, quantity in to_restore:
        try:
            restored = await inventory.increment(product_id, quantity)
            await db.commit()
        except Exception:
            # The cancellation is already committed; a lost restore is logged for repair
            await db.rollback()
            record_stock_restoration("failed")
            logger.exception(
                "stock_restore_failed",
                booking_id=booking_id,
                product_id=product_id,
                quantity=quantity,
            )
            continue

        if restored:
            record_stock_restoration("restored")
            logger.info(
                "stock_restored",
                booking_id=booking_id,
                product_id=product_id,
                quantity=quantity,
            )
        else:
            record_stock_restoration("skipped")
            logger.warning(
                "stock_restore_skipped",
                booking_id=booking_id,
                product_id=product_id,
                reason="product_missing",
            )


async def advance_booking_status(
    db: AsyncSession,
    booking_id: int,
    new_status: str,
) -> Booking:
    """Admin fulfilment step: Booked -> Dispatched -> Delivered."""
    booking = await get_booking(db, booking_id)
    current_status = booking.status

    if FULFILMENT_TRANSITIONS.get(current_status) != new_status:
        raise InvalidStateError(f"Cannot move booking from {current_status} to {new_status}")

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == current_status)
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidStateError("Booking status changed concurrently")
    await db.commit()

    logger.info(
        "booking_status_changed",
        booking_id=booking_id,
        from_status=current_status,
        to_status=new_status,
    )
    return await get_booking(db, booking_id)

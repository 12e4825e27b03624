"""
Service-level tests for the booking engine: atomicity, snapshots, price
policy, storage retries and compensating stock restoration.
"""

import pytest
import pytest_asyncio
from prometheus_client import REGISTRY
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from campus_market.core.exceptions import (
    BookingConflictError,
    InvalidStateError,
    NotFoundError,
    StockConflictError,
    ValidationError,
)
from campus_market.schemas.product import ProductUpdate
from campus_market.services import booking_service
from campus_market.services.booking_service import (
    advance_booking_status,
    cancel_booking,
    create_booking,
    get_booking,
    get_seller_bookings,
)
from campus_market.services.inventory_service import SqlInventoryStore
from campus_market.services.product_service import update_product
from campus_market.services.snapshot import LineItemRequest

from conftest import current_quantity


def locked_error() -> OperationalError:
    return OperationalError("UPDATE products", {}, Exception("database is locked"))


class FlakyInventory(SqlInventoryStore):
    """SQL store that raises storage errors on demand."""

    def __init__(
        self,
        db,
        decrement_failures=0,
        fail_increment_for=(),
        decrement_error=locked_error,
        increment_error=locked_error,
    ):
        super().__init__(db)
        self.decrement_error = decrement_error
        self.increment_error = increment_error
        self.decrement_failures = decrement_failures
        self.fail_increment_for = set(fail_increment_for)
        self.decrement_calls = 0

    async def conditional_decrement(self, product_id, quantity):
        self.decrement_calls += 1
        if self.decrement_failures:
            self.decrement_failures -= 1
            raise self.decrement_error()
        return await super().conditional_decrement(product_id, quantity)

    async def increment(self, product_id, quantity):
        if product_id in self.fail_increment_for:
            raise self.increment_error()
        return await super().increment(product_id, quantity)


@pytest_asyncio.fixture
async def service_db(session_factory):
    """Session for the code under test, separate from the fixture session."""
    async with session_factory() as session:
        yield session


@pytest.mark.asyncio
async def test_shortage_on_second_item_rolls_back_first(service_db, db_session, buyer, seller, make_product):
    first = await make_product(seller, title="Kettle", quantity=5)
    second = await make_product(seller, title="Toaster", quantity=1)
    third = await make_product(seller, title="Iron", quantity=5)

    with pytest.raises(StockConflictError, match="Only 1 left for Toaster"):
        await create_booking(
            service_db,
            buyer.id,
            [
                LineItemRequest(first.id, 2),
                LineItemRequest(second.id, 3),
                LineItemRequest(third.id, 1),
            ],
            500,
        )

    assert await current_quantity(db_session, first.id) == 5
    assert await current_quantity(db_session, second.id) == 1
    assert await current_quantity(db_session, third.id) == 5


@pytest.mark.asyncio
async def test_missing_buyer(service_db, seller, make_product, db_session):
    product = await make_product(seller, quantity=2)

    with pytest.raises(NotFoundError):
        await create_booking(service_db, 99999, [LineItemRequest(product.id, 1)], 100)

    assert await current_quantity(db_session, product.id) == 2


@pytest.mark.asyncio
async def test_snapshot_survives_product_edit(service_db, buyer, seller, make_product):
    """Line items keep the title and price from booking time."""
    product = await make_product(seller, title="Guitar", price=3000, quantity=2)
    booking = await create_booking(service_db, buyer.id, [LineItemRequest(product.id, 1)], 3000)

    await update_product(
        service_db,
        product.id,
        ProductUpdate(title="Broken Guitar", price=10),
        seller.id,
    )
    await service_db.commit()

    reloaded = await get_booking(service_db, booking.id)
    [item] = reloaded.items
    assert item.title == "Guitar"
    assert item.unit_price == 3000
    assert item.seller_email == seller.email


@pytest.mark.asyncio
async def test_client_price_policy_uses_claimed_values(service_db, buyer, seller, make_product):
    product = await make_product(seller, price=100, quantity=5)

    booking = await create_booking(
        service_db,
        buyer.id,
        [LineItemRequest(product.id, 2, price=80)],
        160,
    )
    assert booking.items[0].unit_price == 80
    assert booking.total_price == 160


@pytest.mark.asyncio
async def test_server_price_policy_recomputes_total(monkeypatch, service_db, buyer, seller, make_product):
    monkeypatch.setattr(booking_service.settings, "BOOKING_PRICE_POLICY", "server")
    product = await make_product(seller, price=100, quantity=5)

    booking = await create_booking(
        service_db,
        buyer.id,
        [LineItemRequest(product.id, 2, price=1)],
        200,
    )
    assert booking.items[0].unit_price == 100
    assert booking.total_price == 200


@pytest.mark.asyncio
async def test_server_price_policy_rejects_wrong_total(
    monkeypatch, service_db, db_session, buyer, seller, make_product
):
    monkeypatch.setattr(booking_service.settings, "BOOKING_PRICE_POLICY", "server")
    product = await make_product(seller, price=100, quantity=5)

    with pytest.raises(ValidationError, match="does not match current prices"):
        await create_booking(service_db, buyer.id, [LineItemRequest(product.id, 2)], 20)

    assert await current_quantity(db_session, product.id) == 5


@pytest.mark.asyncio
async def test_storage_conflict_is_retried(service_db, db_session, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    inventory = FlakyInventory(service_db, decrement_failures=1)

    booking = await create_booking(
        service_db, buyer.id, [LineItemRequest(product.id, 1)], 100, inventory=inventory
    )

    assert booking.status == "Booked"
    assert inventory.decrement_calls == 2
    assert await current_quantity(db_session, product.id) == 2


@pytest.mark.asyncio
async def test_storage_conflict_retries_are_bounded(service_db, db_session, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    inventory = FlakyInventory(service_db, decrement_failures=100)

    with pytest.raises(BookingConflictError):
        await create_booking(
            service_db, buyer.id, [LineItemRequest(product.id, 1)], 100, inventory=inventory
        )

    assert inventory.decrement_calls == booking_service.settings.BOOKING_MAX_ATTEMPTS
    assert await current_quantity(db_session, product.id) == 3


@pytest.mark.asyncio
async def test_constraint_error_is_not_retried(service_db, db_session, buyer, seller, make_product):
    """Only write conflicts are retried; other database errors surface at once."""
    product = await make_product(seller, quantity=3)
    inventory = FlakyInventory(
        service_db,
        decrement_failures=100,
        decrement_error=lambda: IntegrityError("UPDATE products", {}, Exception("value out of range")),
    )

    with pytest.raises(IntegrityError):
        await create_booking(
            service_db, buyer.id, [LineItemRequest(product.id, 1)], 100, inventory=inventory
        )

    assert inventory.decrement_calls == 1
    assert await current_quantity(db_session, product.id) == 3


@pytest.mark.asyncio
async def test_out_of_range_value_is_a_validation_error(service_db, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    inventory = FlakyInventory(
        service_db,
        decrement_failures=100,
        decrement_error=lambda: DataError("INSERT INTO bookings", {}, Exception("numeric field overflow")),
    )

    with pytest.raises(ValidationError, match="out of range"):
        await create_booking(
            service_db, buyer.id, [LineItemRequest(product.id, 1)], 100, inventory=inventory
        )

    assert inventory.decrement_calls == 1


@pytest.mark.asyncio
async def test_missing_product_counted_as_not_found(service_db, buyer):
    def not_found_count():
        return REGISTRY.get_sample_value("booking_attempts_total", {"status": "not_found"}) or 0

    before = not_found_count()
    with pytest.raises(NotFoundError):
        await create_booking(service_db, buyer.id, [LineItemRequest(99999, 1)], 100)

    assert not_found_count() == before + 1


def test_storage_conflict_classification():
    class PgError(Exception):
        def __init__(self, sqlstate):
            self.sqlstate = sqlstate

    assert booking_service.is_storage_conflict(locked_error())
    assert booking_service.is_storage_conflict(IntegrityError("UPDATE", {}, PgError("40001")))
    assert booking_service.is_storage_conflict(IntegrityError("UPDATE", {}, PgError("40P01")))
    assert not booking_service.is_storage_conflict(OperationalError("UPDATE", {}, PgError("23514")))
    assert not booking_service.is_storage_conflict(IntegrityError("UPDATE", {}, Exception("duplicate")))


@pytest.mark.asyncio
async def test_cancel_with_deleted_product(service_db, db_session, buyer, seller, make_product):
    """A deleted product is skipped; the rest of the stock still comes back."""
    kept = await make_product(seller, title="Kept", quantity=4)
    gone = await make_product(seller, title="Gone", quantity=4)
    kept_id, gone_id = kept.id, gone.id

    booking = await create_booking(
        service_db,
        buyer.id,
        [LineItemRequest(kept_id, 2), LineItemRequest(gone_id, 1)],
        300,
    )

    await db_session.delete(gone)
    await db_session.commit()

    cancelled = await cancel_booking(service_db, booking.id, buyer.id)

    assert cancelled.status == "Cancelled"
    assert [item.title for item in cancelled.items] == ["Kept", "Gone"]
    assert await current_quantity(db_session, kept_id) == 4


@pytest.mark.asyncio
async def test_cancel_continues_past_failed_restore(service_db, db_session, buyer, seller, make_product):
    first = await make_product(seller, title="First", quantity=3)
    second = await make_product(seller, title="Second", quantity=3)

    booking = await create_booking(
        service_db,
        buyer.id,
        [LineItemRequest(first.id, 1), LineItemRequest(second.id, 2)],
        300,
    )
    inventory = FlakyInventory(service_db, fail_increment_for={first.id})

    cancelled = await cancel_booking(service_db, booking.id, buyer.id, inventory=inventory)

    assert cancelled.status == "Cancelled"
    assert await current_quantity(db_session, first.id) == 2
    assert await current_quantity(db_session, second.id) == 3


@pytest.mark.asyncio
async def test_cancel_twice_restores_once(service_db, db_session, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    booking = await create_booking(service_db, buyer.id, [LineItemRequest(product.id, 2)], 200)

    await cancel_booking(service_db, booking.id, buyer.id)
    with pytest.raises(InvalidStateError):
        await cancel_booking(service_db, booking.id, buyer.id)

    assert await current_quantity(db_session, product.id) == 3


@pytest.mark.asyncio
async def test_fulfilment_transitions(service_db, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    booking = await create_booking(service_db, buyer.id, [LineItemRequest(product.id, 1)], 100)

    with pytest.raises(InvalidStateError):
        await advance_booking_status(service_db, booking.id, "Delivered")

    dispatched = await advance_booking_status(service_db, booking.id, "Dispatched")
    assert dispatched.status == "Dispatched"

    delivered = await advance_booking_status(service_db, booking.id, "Delivered")
    assert delivered.status == "Delivered"

    with pytest.raises(InvalidStateError):
        await advance_booking_status(service_db, booking.id, "Dispatched")


@pytest.mark.asyncio
async def test_dispatched_booking_can_still_be_cancelled(service_db, db_session, buyer, seller, make_product):
    product = await make_product(seller, quantity=3)
    booking = await create_booking(service_db, buyer.id, [LineItemRequest(product.id, 1)], 100)
    await advance_booking_status(service_db, booking.id, "Dispatched")

    cancelled = await cancel_booking(service_db, booking.id, buyer.id)

    assert cancelled.status == "Cancelled"
    assert await current_quantity(db_session, product.id) == 3


@pytest.mark.asyncio
async def test_seller_bookings_include_mixed_bookings(
    service_db, buyer, seller, other_seller, make_product
):
    mine = await make_product(seller, title="Mine")
    theirs = await make_product(other_seller, title="Theirs")

    mixed = await create_booking(
        service_db, buyer.id, [LineItemRequest(theirs.id, 1), LineItemRequest(mine.id, 1)], 200
    )
    await create_booking(service_db, buyer.id, [LineItemRequest(theirs.id, 1)], 100)

    bookings = await get_seller_bookings(service_db, seller.id)
    assert [booking.id for booking in bookings] == [mixed.id]
    assert mixed.seller_ids == {seller.id, other_seller.id}


@pytest.mark.asyncio
async def test_cancel_survives_unexpected_restore_error(service_db, db_session, buyer, seller, make_product):
    """A restore that blows up is logged; the committed cancellation still succeeds."""
    first = await make_product(seller, title="First", quantity=3)
    second = await make_product(seller, title="Second", quantity=3)

    booking = await create_booking(
        service_db,
        buyer.id,
        [LineItemRequest(first.id, 1), LineItemRequest(second.id, 1)],
        200,
    )
    inventory = FlakyInventory(
        service_db,
        fail_increment_for={first.id},
        increment_error=lambda: RuntimeError("inventory backend unavailable"),
    )

    cancelled = await cancel_booking(service_db, booking.id, buyer.id, inventory=inventory)

    assert cancelled.status == "Cancelled"
    assert await current_quantity(db_session, first.id) == 2
    assert await current_quantity(db_session, second.id) == 3

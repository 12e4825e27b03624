"""
Booking model: a buyer's reservation of one or more products.

Key design decisions:
- A booking is a historical record. Buyer and per-item seller/price fields are
  snapshots copied at booking time and never updated afterwards
- `BookingItem.product_id` / `seller_id` are plain integers, not foreign keys,
  so line items outlive edits and deletion of the product
- Status field allows cancellation without deleting records; Cancelled and
  Delivered are terminal
"""

import enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from campus_market.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    BOOKED = "Booked"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED.value, BookingStatus.DELIVERED.value})

# Fulfilment transitions; cancellation is handled separately by the buyer
FULFILMENT_TRANSITIONS = {
    BookingStatus.BOOKED.value: BookingStatus.DISPATCHED.value,
    BookingStatus.DISPATCHED.value: BookingStatus.DELIVERED.value,
}


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    buyer_name = Column(String(100), nullable=False)
    buyer_email = Column(String(255), nullable=False)
    total_price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.BOOKED.value)

    items = relationship(
        "BookingItem",
        back_populates="booking",
        order_by="BookingItem.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_price > 0", name="check_booking_total_positive"),
        CheckConstraint(
            "status IN ('Booked', 'Dispatched', 'Delivered', 'Cancelled')",
            name="check_booking_status",
        ),
        # "My bookings" is always ordered newest first
        Index("ix_bookings_buyer_created", "buyer_id", "created_at"),
    )

    @property
    def seller_ids(self) -> set[int]:
        return {item.seller_id for item in self.items}

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, buyer={self.buyer_id}, status={self.status})>"


class BookingItem(Base):
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    product_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    unit_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False)

    seller_id = Column(Integer, nullable=False, index=True)
    seller_name = Column(String(100), nullable=False)
    seller_email = Column(String(255), nullable=False)

    booking = relationship("Booking", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_item_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<BookingItem(booking={self.booking_id}, product={self.product_id}, qty={self.quantity})>"

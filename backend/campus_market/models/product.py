"""
Product model with stock tracking.

Key design decisions:
- `quantity` is the only shared mutable resource touched by bookings; it is
  changed through conditional UPDATEs, never read-modify-write
- CHECK constraint keeps quantity non-negative as the final safety net
- Seller name/email are denormalized so listings and booking snapshots do not
  need a join on users
- Only `approved` products can be booked
"""

import enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint

from campus_market.db.base import Base, TimestampMixin


class ProductStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=False, default="")
    category = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ProductStatus.PENDING.value)

    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_name = Column(String(100), nullable=False)
    seller_email = Column(String(255), nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="check_product_quantity_non_negative"),
        CheckConstraint("price >= 0", name="check_product_price_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_product_status"
        ),
        # Public listing: approved products, optionally by category, newest first
        Index("ix_products_status_category", "status", "category"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, title={self.title}, quantity={self.quantity}, status={self.status})>"

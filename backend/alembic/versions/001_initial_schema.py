"""Initial schema: users, products, bookings and booking items.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('student', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False, server_default=""),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_name", sa.String(100), nullable=False),
        sa.Column("seller_email", sa.String(255), nullable=False),
        *_timestamps(),
        # The booking engine relies on this as the last line of defence
        # against overselling
        sa.CheckConstraint("quantity >= 0", name="check_product_quantity_non_negative"),
        sa.CheckConstraint("price >= 0", name="check_product_price_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_product_status"
        ),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_seller_id", "products", ["seller_id"])
    op.create_index("ix_products_status_category", "products", ["status", "category"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("buyer_name", sa.String(100), nullable=False),
        sa.Column("buyer_email", sa.String(255), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Booked"),
        *_timestamps(),
        sa.CheckConstraint("total_price > 0", name="check_booking_total_positive"),
        sa.CheckConstraint(
            "status IN ('Booked', 'Dispatched', 'Delivered', 'Cancelled')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_buyer_id", "bookings", ["buyer_id"])
    op.create_index("ix_bookings_buyer_created", "bookings", ["buyer_id", "created_at"])

    # product_id / seller_id deliberately carry no foreign key: line items
    # are snapshots that outlive the product
    op.create_table(
        "booking_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("seller_name", sa.String(100), nullable=False),
        sa.Column("seller_email", sa.String(255), nullable=False),
        sa.CheckConstraint("quantity > 0", name="check_booking_item_quantity_positive"),
    )
    op.create_index("ix_booking_items_booking_id", "booking_items", ["booking_id"])
    op.create_index("ix_booking_items_product_id", "booking_items", ["product_id"])
    op.create_index("ix_booking_items_seller_id", "booking_items", ["seller_id"])


def downgrade() -> None:
    op.drop_table("booking_items")
    op.drop_table("bookings")
    op.drop_table("products")
    op.drop_table("users")

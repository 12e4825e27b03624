"""
SQL-backed inventory store.

CONCURRENCY STRATEGY: Conditional UPDATE
========================================

Problem:
  Two buyers try to book the last unit simultaneously.
  Both read quantity=1, both decrement to 0, both succeed.
  Result: Overselling.

Solution:
  The check and the decrement are one statement:

    UPDATE products SET quantity = quantity - :n
    WHERE id = :id AND status = 'approved' AND quantity >= :n

  If rows_affected == 0 the product is missing, not approved, or short.
  Under READ COMMITTED, PostgreSQL re-evaluates the WHERE clause against the
  committed row once a concurrent writer finishes, so the second buyer sees
  quantity=0 and matches nothing. The CHECK (quantity >= 0) constraint is the
  final safety net.

  The store never commits. The booking engine owns the transaction, so a
  later failure rolls every decrement of the attempt back.
"""

from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.core.exceptions import AppError, NotFoundError, StockConflictError
from campus_market.models.product import Product, ProductStatus
from campus_market.services.interfaces.inventory import InventoryStore


class SqlInventoryStore(InventoryStore):
    """Inventory operations bound to the caller's session and transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def conditional_decrement(self, product_id: int, quantity: int) -> bool:
        result = await self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.status == ProductStatus.APPROVED.value,
                Product.quantity >= quantity,
            )
            .values(quantity=Product.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment(self, product_id: int, quantity: int) -> bool:
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=Product.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_many_by_id(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        # populate_existing: the identity map may hold pre-decrement state
        result = await self.db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    async def shortage_error(self, product_id: int, quantity: int) -> AppError:
        product = await self.db.get(Product, product_id, populate_existing=True)
        if product is None:
            return NotFoundError(f"Product {product_id} not found")
        if product.status != ProductStatus.APPROVED.value:
            return StockConflictError(f"{product.title} is not available for booking")
        return StockConflictError(f"Only {product.quantity} left for {product.title}")

"""
Inventory store interface the booking engine depends on.
Allows swapping the storage implementation without changing booking logic.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from campus_market.core.exceptions import AppError
from campus_market.models.product import Product


class InventoryStore(ABC):
    """
    Stock operations required by the booking engine.

    Implementations must make `conditional_decrement` atomic with respect to
    concurrent callers: the check and the decrement are one storage operation,
    never a read followed by a write.
    """

    @abstractmethod
    async def conditional_decrement(self, product_id: int, quantity: int) -> bool:
        """
        Decrement stock iff the product is approved and has enough quantity.

        Returns:
            True if the product was decremented
            False if no approved product with sufficient quantity matched
        """

    @abstractmethod
    async def increment(self, product_id: int, quantity: int) -> bool:
        """
        Restore stock. Returns False (and changes nothing) if the product
        no longer exists.
        """

    @abstractmethod
    async def find_many_by_id(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """Fresh read of the given products, keyed by id. Missing ids are absent."""

    @abstractmethod
    async def shortage_error(self, product_id: int, quantity: int) -> AppError:
        """
        Explain why a decrement of `quantity` matched nothing: NotFoundError
        for a missing product, StockConflictError when it is not approved or
        has too little stock.
        """

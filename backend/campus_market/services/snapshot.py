"""
Line-item snapshot building for bookings.

A snapshot copies the mutable product fields (title, price, seller identity)
at booking time. Bookings store snapshots, so later product edits or
deletions never change a booking.

Price policy:
  client  Legacy behaviour. A claimed unit price wins over the product price
          and the claimed total is stored as is (price locked in at cart time).
  server  Unit prices always come from the product. The total is recomputed
          and the booking is rejected when the claimed total disagrees by more
          than the configured tolerance.
"""

import enum
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from campus_market.core.exceptions import NotFoundError, ValidationError
from campus_market.models.product import Product


class PricePolicy(str, enum.Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class LineItemRequest:
    product_id: int
    quantity: int
    price: Optional[float] = None


@dataclass(frozen=True)
class LineItemSnapshot:
    product_id: int
    title: str
    unit_price: float
    quantity: int
    seller_id: int
    seller_name: str
    seller_email: str

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


def build_line_items(
    requests: Sequence[LineItemRequest],
    products: Mapping[int, Product],
    policy: PricePolicy = PricePolicy.CLIENT,
) -> list[LineItemSnapshot]:
    """Zip requests with their resolved products, preserving request order."""
    snapshots = []
    for request in requests:
        product = products.get(request.product_id)
        if product is None:
            raise NotFoundError(f"Product {request.product_id} not found")

        if policy == PricePolicy.CLIENT and request.price is not None:
            unit_price = float(request.price)
        else:
            unit_price = float(product.price)

        snapshots.append(
            LineItemSnapshot(
                product_id=product.id,
                title=product.title,
                unit_price=unit_price,
                quantity=request.quantity,
                seller_id=product.seller_id,
                seller_name=product.seller_name,
                seller_email=product.seller_email,
            )
        )
    return snapshots


def resolve_total(
    snapshots: Sequence[LineItemSnapshot],
    claimed_total: float,
    policy: PricePolicy = PricePolicy.CLIENT,
    tolerance: float = 0.01,
) -> float:
    """Return the total to store on the booking."""
    if policy == PricePolicy.CLIENT:
        return float(claimed_total)

    computed = round(sum(snapshot.subtotal for snapshot in snapshots), 2)
    if abs(computed - float(claimed_total)) > tolerance:
        raise ValidationError(
            f"total_price {claimed_total} does not match current prices ({computed})"
        )
    return computed

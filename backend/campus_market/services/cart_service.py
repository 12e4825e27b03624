"""
Cart service: the buyer's pending line items.

Only approved, in-stock products can be added. Quantities are not checked
against stock here; the booking engine does that atomically at booking time.
Booking does not clear the cart.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.core.exceptions import NotFoundError
from campus_market.core.logging import get_logger
from campus_market.models.cart import Cart, CartItem
from campus_market.models.product import Product, ProductStatus
from campus_market.models.user import User

logger = get_logger(__name__)


async def _find_cart(db: AsyncSession, buyer_id: int) -> Optional[Cart]:
    result = await db.execute(select(Cart).where(Cart.buyer_id == buyer_id))
    return result.scalar_one_or_none()


async def _require_cart(db: AsyncSession, buyer_id: int) -> Cart:
    cart = await _find_cart(db, buyer_id)
    if cart is None:
        raise NotFoundError("Cart not found")
    return cart


async def get_or_create_cart(db: AsyncSession, buyer: User) -> Cart:
    """Return the buyer's cart, creating an empty one on first use."""
    cart = await _find_cart(db, buyer.id)
    if cart is None:
        cart = Cart(buyer_id=buyer.id, buyer_name=buyer.name, buyer_email=buyer.email, items=[])
        db.add(cart)
        await db.flush()
        logger.info("cart_created", cart_id=cart.id, buyer_id=buyer.id)
    return cart


async def add_to_cart(db: AsyncSession, buyer: User, product_id: int, quantity: int = 1) -> Cart:
    """
    Add a product, or increase its quantity if already in the cart.
    Raises NotFoundError unless the product is approved and in stock.
    """
    product = await db.get(Product, product_id)
    if (
        product is None
        or product.status != ProductStatus.APPROVED.value
        or product.quantity <= 0
    ):
        raise NotFoundError("Product not available")

    cart = await get_or_create_cart(db, buyer)
    item = cart.find_item(product_id)
    if item is not None:
        item.quantity += quantity
    else:
        cart.items.append(
            CartItem(
                product_id=product.id,
                title=product.title,
                price=product.price,
                quantity=quantity,
                seller_id=product.seller_id,
                seller_name=product.seller_name,
                seller_email=product.seller_email,
            )
        )
    await db.flush()

    logger.info("cart_item_added", buyer_id=buyer.id, product_id=product_id, quantity=quantity)
    return cart


async def update_cart_item(db: AsyncSession, buyer_id: int, product_id: int, quantity: int) -> Cart:
    """Set an item's quantity; zero or less removes it."""
    cart = await _require_cart(db, buyer_id)
    item = cart.find_item(product_id)
    if item is None:
        raise NotFoundError("Item not found in cart")

    if quantity <= 0:
        cart.items.remove(item)
    else:
        item.quantity = quantity
    await db.flush()
    return cart


async def remove_cart_item(db: AsyncSession, buyer_id: int, product_id: int) -> Cart:
    cart = await _require_cart(db, buyer_id)
    item = cart.find_item(product_id)
    if item is not None:
        cart.items.remove(item)
        await db.flush()
    return cart


async def clear_cart(db: AsyncSession, buyer_id: int) -> Cart:
    cart = await _require_cart(db, buyer_id)
    cart.items.clear()
    await db.flush()
    logger.info("cart_cleared", cart_id=cart.id, buyer_id=buyer_id)
    return cart

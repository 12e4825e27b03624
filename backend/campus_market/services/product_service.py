"""
Product service: seller listings and admin moderation.

Quantity is set once at creation. After that only the booking engine
changes it (decrement on booking, restore on cancellation).
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.core.exceptions import AuthorizationError, NotFoundError
from campus_market.core.logging import get_logger
from campus_market.models.product import Product, ProductStatus
from campus_market.models.user import User
from campus_market.schemas.product import ProductCreate, ProductUpdate

logger = get_logger(__name__)


async def create_product(db: AsyncSession, product_data: ProductCreate, seller: User) -> Product:
    """Create a listing awaiting admin approval, with a seller snapshot."""
    product = Product(
        title=product_data.title,
        description=product_data.description,
        category=product_data.category,
        price=product_data.price,
        quantity=product_data.quantity,
        status=ProductStatus.PENDING.value,
        seller_id=seller.id,
        seller_name=seller.name,
        seller_email=seller.email,
    )
    db.add(product)
    await db.flush()

    logger.info("product_created", product_id=product.id, seller_id=seller.id, title=product.title)
    return product


async def get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


async def get_owned_product(db: AsyncSession, product_id: int, seller_id: int) -> Product:
    product = await get_product(db, product_id)
    if product.seller_id != seller_id:
        logger.warning("product_access_denied", product_id=product_id, user_id=seller_id)
        raise AuthorizationError("Not authorized to modify this product")
    return product


async def list_products(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    category: Optional[str] = None,
) -> tuple[list[Product], int]:
    """
    List approved, in-stock products with pagination.
    Uses the ix_products_status_category index.
    """
    query = select(Product).where(
        Product.status == ProductStatus.APPROVED.value,
        Product.quantity > 0,
    )
    if category:
        query = query.where(func.lower(Product.category) == category.lower())

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_seller_products(db: AsyncSession, seller_id: int) -> list[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.seller_id == seller_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
    )
    return list(result.scalars().all())


async def update_product(
    db: AsyncSession,
    product_id: int,
    product_data: ProductUpdate,
    seller_id: int,
) -> Product:
    """Edit a listing. Any change sends it back to moderation."""
    product = await get_owned_product(db, product_id, seller_id)

    changes = product_data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return product

    for field, value in changes.items():
        setattr(product, field, value)
    product.status = ProductStatus.PENDING.value
    await db.flush()

    logger.info("product_updated", product_id=product.id, fields=sorted(changes))
    return product


async def delete_product(db: AsyncSession, product_id: int, seller_id: int) -> None:
    """Delete a listing. Bookings keep their own snapshot of it."""
    product = await get_owned_product(db, product_id, seller_id)
    await db.delete(product)
    await db.flush()
    logger.info("product_deleted", product_id=product_id, seller_id=seller_id)


async def list_pending_products(db: AsyncSession) -> list[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.status == ProductStatus.PENDING.value)
        .order_by(Product.created_at.asc(), Product.id.asc())
    )
    return list(result.scalars().all())


async def set_product_status(db: AsyncSession, product_id: int, status: str) -> Product:
    """Admin moderation: approve or reject a listing."""
    product = await get_product(db, product_id)
    previous = product.status
    product.status = ProductStatus(status).value
    await db.flush()

    logger.info(
        "product_moderated",
        product_id=product.id,
        from_status=previous,
        to_status=product.status,
    )
    return product

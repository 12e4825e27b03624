"""
Product endpoints with Redis caching on the public listing.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_market.db.session import get_db
from campus_market.models.user import User
from campus_market.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from campus_market.services.product_service import (
    create_product,
    delete_product,
    get_product,
    list_products,
    list_seller_products,
    update_product,
)
from campus_market.services.cache_service import (
    get_cached_products,
    invalidate_product_cache,
    set_cached_products,
)
from campus_market.services.interfaces.notifier import Notifier
from campus_market.services.notification_service import notify_product_submitted
from campus_market.services.notifier_factory import get_notifier
from campus_market.core.security import get_current_user, get_current_user_id
from campus_market.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/products", tags=["Products"])


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product_endpoint(
    product_data: ProductCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """List a product for sale. It stays pending until an admin approves it."""
    product = await create_product(db, product_data, user)
    response = ProductResponse.model_validate(product)
    background_tasks.add_task(notify_product_submitted, notifier, response)
    return response


@router.get("/", response_model=ProductListResponse)
async def list_products_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    category: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """
    List approved, in-stock products with pagination.
    Results are cached in Redis for 5 minutes.
    Cache is invalidated on bookings, cancellations and moderation.
    """
    cached = await get_cached_products(page, page_size, category)
    if cached:
        logger.info("products_list_cache_hit", page=page)
        cached["cached"] = True
        return ProductListResponse(**cached)

    products, total = await list_products(db, page, page_size, category)

    response_data = {
        "products": [ProductResponse.model_validate(p).model_dump() for p in products],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }

    await set_cached_products(page, page_size, category, response_data)

    return ProductListResponse(**response_data)


@router.get("/mine", response_model=list[ProductResponse])
async def list_my_products(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All of the caller's listings, whatever their moderation status."""
    return await list_seller_products(db, user_id)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product_endpoint(
    product_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single product by ID. Not cached (needs real-time quantity)."""
    return await get_product(db, product_id)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product_endpoint(
    product_id: int,
    product_data: ProductUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Edit a listing. The product goes back to pending moderation."""
    product = await update_product(db, product_id, product_data, user_id)
    # Commit first so a concurrent listing cannot re-cache the old rows
    await db.commit()
    await invalidate_product_cache()
    return product


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product_endpoint(
    product_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await delete_product(db, product_id, user_id)
    await db.commit()
    await invalidate_product_cache()

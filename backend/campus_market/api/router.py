"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from campus_market.api.routes import admin, auth, bookings, cart, products

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(products.router)
api_router.include_router(cart.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)

"""API routers for the orderflow service."""
from fastapi import APIRouter

from . import admin, deliveries, disputes, escrow, health, orders


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(orders.router)
    api_router.include_router(deliveries.router)
    api_router.include_router(disputes.router)
    api_router.include_router(escrow.router)
    api_router.include_router(admin.router)
    return api_router

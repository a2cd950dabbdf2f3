"""Application routes."""

from fastapi import APIRouter

from . import menu, orders, shops

router = APIRouter()
router.include_router(shops.router)
router.include_router(orders.router)
router.include_router(menu.router)

__all__ = ["router"]

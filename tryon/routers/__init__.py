"""Router package exposing all API routers."""

from fastapi import APIRouter

from .resize.router import router as resize_router
from .tryon.router import router as tryon_router

router = APIRouter()
router.include_router(tryon_router)
router.include_router(resize_router)

__all__ = ["router", "resize_router", "tryon_router"]

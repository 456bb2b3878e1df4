"""Compose vitals HTTP and WebSocket routers."""

from fastapi import APIRouter

from .http import router as http_router
from .ws import router as ws_router

router = APIRouter()
router.include_router(ws_router)
router.include_router(http_router)

__all__ = ["router"]

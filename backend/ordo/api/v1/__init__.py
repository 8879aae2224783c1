"""Versioned API router."""

from fastapi import APIRouter

from . import health, payments_webhook

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(payments_webhook.router)

__all__ = ["router"]

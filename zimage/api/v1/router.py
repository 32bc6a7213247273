"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from zimage.api.v1.health import router as health_router
from zimage.api.v1.generate import router as generate_router
from zimage.api.v1.studio import router as studio_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(generate_router, tags=["generate"])
v1_router.include_router(studio_router, tags=["studio"])

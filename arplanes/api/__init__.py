"""API routers for the AR Planes host surface."""

from fastapi import APIRouter

from .flights import router as flights_router
from .health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(flights_router)

__all__ = ["api_router"]

"""
API Routes Module
"""
from .health import router as health_router
from .analytics import router as analytics_router
from .settings import router as settings_router

__all__ = [
    "health_router",
    "analytics_router",
    "settings_router",
]

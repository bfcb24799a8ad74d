"""API v1 router: all admin JSON endpoints under /api/v1 prefix."""

from fastapi import APIRouter

from .notification_templates.routes import router as templates_router
from .notifications.routes import router as notifications_router
from .preferences.routes import router as preferences_router

api_v1_router = APIRouter(prefix="/api/v1", tags=["api-v1"])

# Templates first so /admin/notifications/templates is not shadowed
api_v1_router.include_router(templates_router)
api_v1_router.include_router(notifications_router)
api_v1_router.include_router(preferences_router)

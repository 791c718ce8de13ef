from fastapi import APIRouter

from focusdesk.api.auth import router as auth_router
from focusdesk.api.focuses import router as focuses_router
from focusdesk.api.health import router as health_router
from focusdesk.api.users import router as users_router
from focusdesk.api.workspace import router as workspace_router

api_router = APIRouter()

# Include sub-routers
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(focuses_router)
api_router.include_router(workspace_router)

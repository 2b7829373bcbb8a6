from fastapi import APIRouter

from sso_bridge.api.auth import router as auth_router
from sso_bridge.api.community import router as community_router
from sso_bridge.api.health import router as health_router
from sso_bridge.api.sso import router as sso_router

api_router = APIRouter()

# Include sub-routers
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(sso_router)
api_router.include_router(community_router)

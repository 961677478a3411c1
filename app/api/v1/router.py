# app/api/v1/router.py
from fastapi import APIRouter
from app.api.v1.auth import router as auth_router
from app.api.v1.tracking import router as tracking_router
from app.modules.integrations.router import router as integrations_router
from app.modules.manifests.router import router as manifests_router
from app.modules.api_keys.router import router as api_keys_router

# Crear router principal de la API v1
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["authentication"])

api_router.include_router(
    integrations_router,
    prefix="/integrations",
    tags=["Warehouse Integrations"]
)

api_router.include_router(
    manifests_router,
    prefix="/manifests",
    tags=["Manifests"]
)

api_router.include_router(
    api_keys_router,
    prefix="/api-keys",
    tags=["API Keys - Admin"]
)

api_router.include_router(
    tracking_router,
    prefix="/tracking",
    tags=["Tracking"]
)

@api_router.get("/")
async def api_root():
    """Root endpoint de la API"""
    return {
        "message": "Courier Warehouse Sync API v1",
        "status": "active",
        "docs": "/docs",
        "available_endpoints": {
            "authentication": "/api/v1/auth",
            "integrations": "/api/v1/integrations",
            "manifests": "/api/v1/manifests",
            "api_keys": "/api/v1/api-keys",
            "tracking": "/api/v1/tracking"
        }
    }

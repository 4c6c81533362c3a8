"""
API v1 Router
Aggregates all v1 endpoints
"""

from fastapi import APIRouter

from cyclecount.api.v1 import audit, imports, sessions
from cyclecount.core.config import settings

api_router = APIRouter()

# Include route modules
api_router.include_router(imports.router, tags=["Inventory"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
api_router.include_router(audit.router, prefix="/audit", tags=["Audit"])


@api_router.get("/")
def api_root():
    return {
        "message": f"{settings.PROJECT_NAME} API v1",
        "version": settings.VERSION,
        "status": "active",
        "endpoints": {
            "imports": "/v1/imports",
            "inventory": "/v1/inventory/locations",
            "sessions": "/v1/sessions",
            "audit": "/v1/audit",
            "docs": "/docs"
        }
    }

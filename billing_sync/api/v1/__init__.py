"""
API v1 Router

Read-side endpoints for internal services.
"""

from fastapi import APIRouter

from . import subscribers

router = APIRouter()

router.include_router(subscribers.router, prefix="/subscribers", tags=["Subscribers"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/subscribers/{userId}/subscription",
        ],
    }

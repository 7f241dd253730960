"""
Liveness endpoint. No authentication, no datastore access.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "database_configured": getattr(request.app.state, "database_configured", False)
    }

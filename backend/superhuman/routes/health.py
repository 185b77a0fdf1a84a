"""
Health check endpoint.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": request.app.version,
        "cached_gmail_sessions": len(request.app.state.session_cache),
    }

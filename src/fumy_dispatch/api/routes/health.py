"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check whether the Supabase backend is configured and reachable."""
    from ...db.supabase import ROUTES_TABLE, get_supabase_client

    if settings.storage_backend != "supabase":
        return {"configured": False, "backend": settings.storage_backend, "message": "Using in-memory storage."}

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "backend": settings.storage_backend,
            "message": "Supabase not configured. Set FUMY_SUPABASE_URL and FUMY_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table(ROUTES_TABLE).select("route_id").limit(1).execute()
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
    return {"configured": True, "connected": True, "message": "Database connected."}

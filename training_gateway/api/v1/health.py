"""Liveness endpoints."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
@router.get("/health")
async def health_check():
    return {"status": "success", "message": "ML Training Backend is Running!"}


@router.post("/api/test-post")
async def test_post():
    """Confirms POST requests reach the service (proxy/TLS debugging)."""
    return {"status": "success", "message": "POST connection working!"}

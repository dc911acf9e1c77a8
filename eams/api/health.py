"""Health and metrics endpoints."""

from fastapi import APIRouter

from eams.auth.routes import PUBLIC_ROUTES, TENANT_ROUTES

router = APIRouter()


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/metrics")
async def metrics():
    """Basic metrics endpoint for observability."""
    return {
        "service": "eams",
        "version": "0.1.0",
        "routes": {"public": len(PUBLIC_ROUTES), "tenant_scoped": len(TENANT_ROUTES)},
    }

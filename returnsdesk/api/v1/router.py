from fastapi import APIRouter

from returnsdesk.api.v1.endpoints import returns


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Returns ====================
api_router.include_router(
    returns.router,
    prefix="/returns",
    tags=["Returns"]
)

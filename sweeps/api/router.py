from fastapi import APIRouter

from sweeps.api.routes import health, review, sources, sweeps

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(sweeps.router, prefix="/sweeps", tags=["admin"])
api_router.include_router(review.router, prefix="/review", tags=["admin"])
api_router.include_router(sources.router, prefix="/sources", tags=["admin"])

from fastapi import APIRouter

from order_intake.api.v1.endpoints import cases

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])

__all__ = ["api_router"]

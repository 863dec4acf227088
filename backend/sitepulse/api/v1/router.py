from fastapi import APIRouter
from sitepulse.api.v1.endpoints import notifications

api_router = APIRouter()


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "sitepulse"}


api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from app.api.v1.endpoints import ai, medical_bills

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(medical_bills.router, prefix="/medical-bills", tags=["Medical Bills"])
api_router.include_router(ai.router, prefix="/ai", tags=["AI"])

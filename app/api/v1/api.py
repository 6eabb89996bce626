"""
Main API Router for the Madagascar License Eligibility Engine v1
Includes all endpoint routers
"""

from fastapi import APIRouter

from app.api.v1.endpoints import applications
from app.api.v1.endpoints import license_rules
from app.api.v1.endpoints import lookups

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(applications.router, prefix="/applications", tags=["Applications"])
api_router.include_router(license_rules.router, prefix="/license-rules", tags=["License Rules"])
api_router.include_router(lookups.router, prefix="/lookups", tags=["Lookups"])

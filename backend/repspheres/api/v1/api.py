"""API routes for the FastAPI application."""

from fastapi import APIRouter

from repspheres.api.v1.endpoints import billing, health, subscription

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(billing.router, prefix="/api", tags=["billing"])
api_router.include_router(subscription.router, prefix="/api/subscription", tags=["subscription"])

"""
API v1 Router

Tenant routers (projects, users, TG Calabria proxy) sit behind the
subscription gate; everything else checks roles per endpoint.
"""

from fastapi import APIRouter, Depends

from app.core.subscription_gate import require_active_subscription
from . import companies, projects, signup_requests, subscription_plans, subscriptions, tg_calabria, users

router = APIRouter()

gated = [Depends(require_active_subscription)]

# Public and operator routes
router.include_router(companies.router, prefix="/companies", tags=["Companies"])
router.include_router(signup_requests.router, prefix="/signup-requests", tags=["Signup Requests"])
router.include_router(subscriptions.router, prefix="/subscription", tags=["Subscription"])
router.include_router(subscription_plans.router, prefix="/subscription-plans", tags=["Subscription Plans"])
router.include_router(projects.public_router, prefix="/public/projects", tags=["Projects"])

# Tenant routes
router.include_router(projects.router, prefix="/projects", tags=["Projects"], dependencies=gated)
router.include_router(users.router, prefix="/users", tags=["Users"], dependencies=gated)
router.include_router(tg_calabria.router, prefix="/tg-calabria", tags=["TG Calabria"], dependencies=gated)


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/companies",
            "/companies/{companyId}/projects",
            "/projects",
            "/public/projects",
            "/users",
            "/signup-requests",
            "/subscription",
            "/subscription-plans",
            "/tg-calabria",
        ],
    }

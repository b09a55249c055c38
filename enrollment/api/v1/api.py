# enrollment/api/v1/api.py

from fastapi import APIRouter
from enrollment.api.v1.endpoints import (
    admin,
    health,
    registrations,
    waitlist,
    webhooks,
)

# This is the main router for the v1 API.
api_router = APIRouter()

api_router.include_router(registrations.router)
api_router.include_router(waitlist.router)
api_router.include_router(admin.router)
api_router.include_router(webhooks.router)
api_router.include_router(health.router)

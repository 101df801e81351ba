"""
Main API router that aggregates all endpoint routers.
"""

from fastapi import APIRouter

from marketplace.api.endpoints import (
    dashboard,
    invitations,
    maintenance,
    providers,
    quotes,
    rfqs,
    verifications,
)

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(
    rfqs.router,
    prefix="/rfqs",
    tags=["RFQs"],
)

api_router.include_router(
    quotes.router,
    prefix="/quotes",
    tags=["Quotes"],
)

api_router.include_router(
    invitations.router,
    prefix="/invitations",
    tags=["Invitations"],
)

api_router.include_router(
    providers.router,
    prefix="/providers",
    tags=["Providers"],
)

api_router.include_router(
    verifications.router,
    prefix="/verifications",
    tags=["Verifications"],
)

api_router.include_router(
    maintenance.router,
    prefix="/maintenance",
    tags=["Maintenance"],
)

api_router.include_router(
    dashboard.router,
    prefix="/dashboard",
    tags=["Dashboard"],
)

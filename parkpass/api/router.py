"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from parkpass.api.routes import bookings, catalog, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(catalog.router)
api_router.include_router(bookings.router)
api_router.include_router(tickets.router)

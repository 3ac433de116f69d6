from fastapi import APIRouter

from app.api.v1.endpoints import availability, booking

api_router = APIRouter()

api_router.include_router(availability.router, prefix="/availability", tags=["availability"])
api_router.include_router(booking.router, prefix="/bookings", tags=["bookings"])

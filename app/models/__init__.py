from app.core.database import Base
from .availability import AvailabilityWindow, TimeOffBlock
from .booking import Booking

__all__ = [
    "Base",

    # Availability and booking
    "AvailabilityWindow",
    "TimeOffBlock",
    "Booking",
]

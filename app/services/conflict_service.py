from datetime import datetime
from typing import Iterable, List, Optional
import enum
import uuid

from app.core.intervals import Interval, covers, overlaps, subtract
from app.domain.booking import ACTIVE_STATUSES, Booking
from app.repositories.base import SchedulingStore
from app.services.availability_service import AvailabilityService


class AvailabilityCheck(str, enum.Enum):
    AVAILABLE = "available"
    OUTSIDE_WINDOW = "outside_window"
    OVERLAPS_BOOKING = "overlaps_booking"


def evaluate(target: Interval, effective: Iterable[Interval], bookings: Iterable[Booking]) -> AvailabilityCheck:
    if not covers(effective, target):
        return AvailabilityCheck.OUTSIDE_WINDOW
    for booking in bookings:
        if booking.status in ACTIVE_STATUSES and overlaps(booking.interval, target):
            return AvailabilityCheck.OVERLAPS_BOOKING
    return AvailabilityCheck.AVAILABLE


class ConflictService:
    """Decides whether a tutor or student can take a session in ``[start, end)``"""

    def __init__(self, store: SchedulingStore, availability_service: AvailabilityService):
        self.store = store
        self.availability_service = availability_service

    async def check_available(self, tutor_id: uuid.UUID, start: datetime, end: datetime) -> AvailabilityCheck:
        target = Interval.utc(start, end)
        effective = await self.availability_service.list_effective_windows(tutor_id, target.start, target.end)
        bookings = await self.store.list_bookings_for_tutor(
            tutor_id,
            statuses=ACTIVE_STATUSES,
            start=target.start,
            end=target.end,
        )
        return evaluate(target, effective, bookings)

    async def free_intervals(self, tutor_id: uuid.UUID, start: datetime, end: datetime) -> List[Interval]:
        """Effective availability in ``[start, end)`` minus active bookings."""
        target = Interval.utc(start, end)
        effective = await self.availability_service.list_effective_windows(tutor_id, target.start, target.end)
        bookings = await self.store.list_bookings_for_tutor(
            tutor_id,
            statuses=ACTIVE_STATUSES,
            start=target.start,
            end=target.end,
        )
        return subtract(effective, [booking.interval for booking in bookings])

    async def find_student_conflict(self, student_id: uuid.UUID, start: datetime, end: datetime) -> Optional[Booking]:
        """The student's active booking overlapping ``[start, end)``, if any."""
        target = Interval.utc(start, end)
        for booking in await self.store.list_bookings_for_student(student_id, statuses=ACTIVE_STATUSES):
            if overlaps(booking.interval, target):
                return booking
        return None

from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional
import threading
import uuid

from app.core.exceptions import NotFoundError, OverlapError, StaleVersionError
from app.core.intervals import overlaps
from app.domain.availability import AvailabilityWindow, TimeOffBlock
from app.domain.booking import ACTIVE_STATUSES, Booking, BookingStatus
from app.repositories.base import SchedulingStore


class InMemorySchedulingStore(SchedulingStore):
    """Process-local store; every operation runs under one mutex.

    Domain objects are frozen dataclasses, so handing them out is already a
    snapshot.
    """

    def __init__(self):
        self._mutex = threading.Lock()
        self._windows: Dict[uuid.UUID, AvailabilityWindow] = {}
        self._time_off: Dict[uuid.UUID, TimeOffBlock] = {}
        self._bookings: Dict[uuid.UUID, Booking] = {}

    async def add_window(self, window: AvailabilityWindow) -> AvailabilityWindow:
        with self._mutex:
            self._windows[window.id] = window
        return window

    async def get_window(self, window_id: uuid.UUID) -> Optional[AvailabilityWindow]:
        with self._mutex:
            return self._windows.get(window_id)

    async def list_windows(self, tutor_id: uuid.UUID) -> List[AvailabilityWindow]:
        with self._mutex:
            return [w for w in self._windows.values() if w.tutor_id == tutor_id and w.is_active]

    async def deactivate_window(self, window_id: uuid.UUID) -> None:
        with self._mutex:
            window = self._windows.get(window_id)
            if window is None:
                raise NotFoundError("Availability", str(window_id))
            self._windows[window_id] = replace(window, is_active=False)

    async def add_time_off(self, block: TimeOffBlock) -> TimeOffBlock:
        with self._mutex:
            self._time_off[block.id] = block
        return block

    async def list_time_off(
        self,
        tutor_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TimeOffBlock]:
        with self._mutex:
            blocks = [b for b in self._time_off.values() if b.tutor_id == tutor_id]
        if start is not None:
            blocks = [b for b in blocks if b.end_at > start]
        if end is not None:
            blocks = [b for b in blocks if b.start_at < end]
        return sorted(blocks, key=lambda b: b.start_at)

    async def add_booking(self, booking: Booking) -> Booking:
        with self._mutex:
            for existing in self._bookings.values():
                if (
                    booking.is_active
                    and existing.tutor_id == booking.tutor_id
                    and existing.status in ACTIVE_STATUSES
                    and overlaps(existing.interval, booking.interval)
                ):
                    raise OverlapError(
                        "Tutor already has a booking in this time range",
                        {"booking_id": str(existing.id)},
                    )
            self._bookings[booking.id] = booking
        return booking

    async def get_booking(self, booking_id: uuid.UUID) -> Optional[Booking]:
        with self._mutex:
            return self._bookings.get(booking_id)

    async def update_booking(self, booking: Booking, expected_version: int) -> Booking:
        with self._mutex:
            current = self._bookings.get(booking.id)
            if current is None:
                raise NotFoundError("Booking", str(booking.id))
            if current.version != expected_version:
                raise StaleVersionError(expected_version, current.version)
            self._bookings[booking.id] = booking
        return booking

    async def list_bookings_for_tutor(
        self,
        tutor_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Booking]:
        wanted = set(statuses) if statuses is not None else None
        with self._mutex:
            bookings = [b for b in self._bookings.values() if b.tutor_id == tutor_id]
        if wanted is not None:
            bookings = [b for b in bookings if b.status in wanted]
        if start is not None:
            bookings = [b for b in bookings if b.scheduled_end > start]
        if end is not None:
            bookings = [b for b in bookings if b.scheduled_start < end]
        return sorted(bookings, key=lambda b: b.scheduled_start)

    async def list_bookings_for_student(
        self,
        student_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        wanted = set(statuses) if statuses is not None else None
        with self._mutex:
            bookings = [b for b in self._bookings.values() if b.student_id == student_id]
        if wanted is not None:
            bookings = [b for b in bookings if b.status in wanted]
        return sorted(bookings, key=lambda b: b.scheduled_start)

    async def list_due_bookings(self, now: datetime) -> List[Booking]:
        with self._mutex:
            bookings = list(self._bookings.values())
        due = [
            b for b in bookings
            if (b.status in (BookingStatus.REQUESTED, BookingStatus.CONFIRMED) and b.scheduled_start <= now)
            or (b.status == BookingStatus.IN_PROGRESS and b.scheduled_end <= now)
        ]
        return sorted(due, key=lambda b: b.scheduled_start)

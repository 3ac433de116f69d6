from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional
import uuid

from app.domain.availability import AvailabilityWindow, TimeOffBlock
from app.domain.booking import Booking, BookingStatus


class SchedulingStore(ABC):
    """Transactional storage used by the booking core.

    Reads return snapshots: callers get copies that later writes do not
    change. ``add_booking`` and ``update_booking`` are compare-and-set writes.
    """

    # Availability windows

    @abstractmethod
    async def add_window(self, window: AvailabilityWindow) -> AvailabilityWindow:
        ...

    @abstractmethod
    async def get_window(self, window_id: uuid.UUID) -> Optional[AvailabilityWindow]:
        ...

    @abstractmethod
    async def list_windows(self, tutor_id: uuid.UUID) -> List[AvailabilityWindow]:
        """Active windows of a tutor."""

    @abstractmethod
    async def deactivate_window(self, window_id: uuid.UUID) -> None:
        ...

    # Time off

    @abstractmethod
    async def add_time_off(self, block: TimeOffBlock) -> TimeOffBlock:
        ...

    @abstractmethod
    async def list_time_off(
        self,
        tutor_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TimeOffBlock]:
        ...

    # Bookings

    @abstractmethod
    async def add_booking(self, booking: Booking) -> Booking:
        """Insert a booking; raises OverlapError if an active booking of the
        same tutor overlaps it."""

    @abstractmethod
    async def get_booking(self, booking_id: uuid.UUID) -> Optional[Booking]:
        ...

    @abstractmethod
    async def update_booking(self, booking: Booking, expected_version: int) -> Booking:
        """Replace the stored booking if its version still equals
        ``expected_version``; raises StaleVersionError otherwise."""

    @abstractmethod
    async def list_bookings_for_tutor(
        self,
        tutor_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Booking]:
        ...

    @abstractmethod
    async def list_bookings_for_student(
        self,
        student_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        ...

    @abstractmethod
    async def list_due_bookings(self, now: datetime) -> List[Booking]:
        """REQUESTED or CONFIRMED bookings that have started and IN_PROGRESS bookings that have ended."""

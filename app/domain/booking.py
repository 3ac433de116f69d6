from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import enum
import uuid

from app.core.intervals import Interval


class BookingStatus(str, enum.Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that still hold the tutor's time
ACTIVE_STATUSES = frozenset({BookingStatus.REQUESTED, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.REJECTED, BookingStatus.CANCELLED})


@dataclass(frozen=True)
class Booking:
    tutor_id: uuid.UUID
    student_id: uuid.UUID
    subject_id: uuid.UUID
    scheduled_start: datetime
    scheduled_end: datetime
    status: BookingStatus = BookingStatus.REQUESTED
    version: int = 1
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.scheduled_start, self.scheduled_end)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_party(self, actor_id) -> bool:
        return actor_id is not None and actor_id in (self.tutor_id, self.student_id)

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Optional
import enum
import uuid

import pytz

from app.core.exceptions import ValidationError


class Recurrence(str, enum.Enum):
    NONE = "none"
    WEEKLY = "weekly"


def python_weekday(day_of_week: int) -> int:
    """Convert 0=Sunday..6=Saturday into ``date.weekday()`` numbering (0=Monday)."""
    return (day_of_week - 1) % 7


@dataclass(frozen=True)
class AvailabilityWindow:
    """A tutor's bookable wall-clock window, either weekly or on one date.

    ``day_of_week`` uses 0=Sunday..6=Saturday. Times are wall-clock in
    ``timezone``; ``valid_from``/``valid_until`` are inclusive dates.
    """

    tutor_id: uuid.UUID
    start_time: time
    end_time: time
    recurrence: Recurrence = Recurrence.WEEKLY
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    timezone: str = "UTC"
    is_active: bool = True
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validate(self) -> None:
        if not self.start_time < self.end_time:
            raise ValidationError("startTime must be before endTime")
        if self.recurrence == Recurrence.WEEKLY:
            if self.day_of_week is None or not 0 <= self.day_of_week <= 6:
                raise ValidationError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
            if self.specific_date is not None:
                raise ValidationError("Weekly windows cannot carry a specific date")
        else:
            if self.specific_date is None:
                raise ValidationError("One-time windows require a specific date")
            if self.day_of_week is not None:
                raise ValidationError("One-time windows cannot carry a day of week")
        if self.valid_from and self.valid_until and self.valid_from > self.valid_until:
            raise ValidationError("validFrom must not be after validUntil")
        if self.timezone not in pytz.all_timezones_set:
            raise ValidationError(f"Unknown timezone {self.timezone}")

    @property
    def python_weekday(self) -> Optional[int]:
        if self.recurrence == Recurrence.WEEKLY:
            return python_weekday(self.day_of_week)
        return self.specific_date.weekday()

    def is_valid_on(self, day: date) -> bool:
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True

    def occurs_on(self, day: date) -> bool:
        if not self.is_valid_on(day):
            return False
        if self.recurrence == Recurrence.WEEKLY:
            return day.weekday() == python_weekday(self.day_of_week)
        return day == self.specific_date

    def times_overlap(self, other: "AvailabilityWindow") -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time


@dataclass(frozen=True)
class TimeOffBlock:
    tutor_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    id: uuid.UUID = field(default_factory=uuid.uuid4)

from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime, time
import uuid

from app.core.intervals import Interval
from app.domain.availability import AvailabilityWindow, Recurrence, TimeOffBlock

TIME_PATTERN = r"^([0-1][0-9]|2[0-3]):([0-5][0-9])$"


def _parse_time(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


class AvailabilityWindowCreate(BaseModel):
    recurrence: Recurrence = Field(Recurrence.WEEKLY, description="weekly or none (one-time)")
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0 (Sunday) to 6 (Saturday), weekly windows only")
    specific_date: Optional[date] = Field(None, description="Date of a one-time window")
    start_time: str = Field(..., pattern=TIME_PATTERN, description="Start time, HH:MM")
    end_time: str = Field(..., pattern=TIME_PATTERN, description="End time, HH:MM")
    valid_from: Optional[date] = Field(None, description="First date the window applies")
    valid_until: Optional[date] = Field(None, description="Last date the window applies")
    timezone: str = Field("UTC", description="IANA timezone of start_time/end_time")

    def to_domain(self, tutor_id: uuid.UUID) -> AvailabilityWindow:
        return AvailabilityWindow(
            tutor_id=tutor_id,
            start_time=_parse_time(self.start_time),
            end_time=_parse_time(self.end_time),
            recurrence=self.recurrence,
            day_of_week=self.day_of_week,
            specific_date=self.specific_date,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            timezone=self.timezone,
        )


class AvailabilityWindowResponse(BaseModel):
    id: uuid.UUID
    tutor_id: uuid.UUID
    recurrence: Recurrence
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    start_time: str
    end_time: str
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    timezone: str

    @classmethod
    def from_domain(cls, window: AvailabilityWindow) -> "AvailabilityWindowResponse":
        return cls(
            id=window.id,
            tutor_id=window.tutor_id,
            recurrence=window.recurrence,
            day_of_week=window.day_of_week,
            specific_date=window.specific_date,
            start_time=window.start_time.strftime("%H:%M"),
            end_time=window.end_time.strftime("%H:%M"),
            valid_from=window.valid_from,
            valid_until=window.valid_until,
            timezone=window.timezone,
        )


class EffectiveIntervalResponse(BaseModel):
    start_at: datetime = Field(..., description="Interval start (UTC)")
    end_at: datetime = Field(..., description="Interval end (UTC, exclusive)")
    duration_minutes: int

    @classmethod
    def from_interval(cls, interval: Interval) -> "EffectiveIntervalResponse":
        return cls(start_at=interval.start, end_at=interval.end, duration_minutes=interval.duration_minutes)


class TimeOffCreate(BaseModel):
    start_at: datetime = Field(..., description="Start of time off (timezone-aware)")
    end_at: datetime = Field(..., description="End of time off (timezone-aware)")


class TimeOffResponse(BaseModel):
    id: uuid.UUID
    tutor_id: uuid.UUID
    start_at: datetime
    end_at: datetime

    @classmethod
    def from_domain(cls, block: TimeOffBlock) -> "TimeOffResponse":
        return cls(id=block.id, tutor_id=block.tutor_id, start_at=block.start_at, end_at=block.end_at)

"""Shared builders for scheduling tests"""
from datetime import date, datetime, time, timedelta, timezone
from typing import List

from app.domain.availability import AvailabilityWindow, Recurrence
from app.domain.events import BookingEvent

# Tuesday; the next Monday is 2030-01-07
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2030, 1, 7)
CANCELLATION_LEAD = timedelta(hours=2)
CLAIM_TTL_SECONDS = 30


def utc(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute, second), tzinfo=timezone.utc)


def weekly_window(tutor_id, day_of_week=1, start="09:00", end="12:00", **kwargs) -> AvailabilityWindow:
    return AvailabilityWindow(
        tutor_id=tutor_id,
        recurrence=Recurrence.WEEKLY,
        day_of_week=day_of_week,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        **kwargs,
    )


def one_time_window(tutor_id, on: date, start="09:00", end="12:00", **kwargs) -> AvailabilityWindow:
    return AvailabilityWindow(
        tutor_id=tutor_id,
        recurrence=Recurrence.NONE,
        specific_date=on,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        **kwargs,
    )


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class EventRecorder:
    def __init__(self):
        self.events: List[BookingEvent] = []

    async def __call__(self, event: BookingEvent) -> None:
        self.events.append(event)

    def transitions(self, booking_id=None):
        return [
            (e.from_state, e.to_state)
            for e in self.events
            if booking_id is None or e.booking_id == booking_id
        ]


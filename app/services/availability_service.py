from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence
import asyncio
import logging
import uuid

from dateutil.rrule import WEEKLY, rrule
import pytz

from app.core.config import settings
from app.core.exceptions import AuthorizationError, NotFoundError, OverlapError, ValidationError
from app.core.intervals import Interval, ensure_utc, subtract
from app.domain.availability import AvailabilityWindow, Recurrence, TimeOffBlock
from app.repositories.base import SchedulingStore

logger = logging.getLogger(__name__)


def _occurrence_dates(window: AvailabilityWindow, first: date, last: date) -> List[date]:
    """Local dates in ``[first, last]`` on which ``window`` applies."""
    if window.recurrence == Recurrence.WEEKLY:
        lo = max(first, window.valid_from) if window.valid_from else first
        hi = min(last, window.valid_until) if window.valid_until else last
        if lo > hi:
            return []
        rule = rrule(
            WEEKLY,
            byweekday=window.python_weekday,
            dtstart=datetime.combine(lo, time.min),
            until=datetime.combine(hi, time.min),
        )
        return [occurrence.date() for occurrence in rule]

    day = window.specific_date
    if first <= day <= last and window.is_valid_on(day):
        return [day]
    return []


def materialize_windows(
    windows: Iterable[AvailabilityWindow],
    range_start: datetime,
    range_end: datetime,
    time_off: Iterable[TimeOffBlock] = (),
) -> List[Interval]:
    """Expand windows into concrete UTC intervals clipped to ``[range_start, range_end)``.

    Weekly windows are expanded with an RRULE over the local dates the range
    touches, localised in the window's timezone (so DST shifts are honoured)
    and converted back to UTC. Time off is cut out of the result. The output
    is sorted and depends on nothing but the arguments.
    """
    range_start = ensure_utc(range_start, "range_start")
    range_end = ensure_utc(range_end, "range_end")
    if not range_start < range_end:
        raise ValidationError("Range start must be before range end")

    intervals: List[Interval] = []
    for window in windows:
        if not window.is_active:
            continue
        tz = pytz.timezone(window.timezone)
        # pad by a day so windows whose local date differs from the UTC date are not lost
        first = range_start.astimezone(tz).date() - timedelta(days=1)
        last = range_end.astimezone(tz).date() + timedelta(days=1)
        for day in _occurrence_dates(window, first, last):
            start = tz.localize(datetime.combine(day, window.start_time)).astimezone(timezone.utc)
            end = tz.localize(datetime.combine(day, window.end_time)).astimezone(timezone.utc)
            if not start < end:
                continue
            clipped = Interval(start, end).clip(range_start, range_end)
            if clipped is not None:
                intervals.append(clipped)

    holes = [Interval(ensure_utc(block.start_at), ensure_utc(block.end_at)) for block in time_off]
    return subtract(intervals, holes)


def _validity_intersection(a: AvailabilityWindow, b: AvailabilityWindow):
    starts = [d for d in (a.valid_from, b.valid_from) if d is not None]
    ends = [d for d in (a.valid_until, b.valid_until) if d is not None]
    return (max(starts) if starts else None, min(ends) if ends else None)


def windows_conflict(a: AvailabilityWindow, b: AvailabilityWindow) -> bool:
    """True when both windows can apply on the same date with overlapping times."""
    if not a.times_overlap(b):
        return False

    if a.recurrence == Recurrence.NONE:
        return b.occurs_on(a.specific_date) and a.occurs_on(a.specific_date)
    if b.recurrence == Recurrence.NONE:
        return a.occurs_on(b.specific_date) and b.occurs_on(b.specific_date)

    if a.day_of_week != b.day_of_week:
        return False
    lo, hi = _validity_intersection(a, b)
    if lo is None or hi is None:
        return True
    if lo > hi:
        return False
    if (hi - lo).days >= 6:
        return True
    weekday = a.python_weekday
    return any((lo + timedelta(days=offset)).weekday() == weekday for offset in range((hi - lo).days + 1))


def _window_sort_key(window: AvailabilityWindow):
    # recurring first, then weekday / date, then start time
    return (
        0 if window.recurrence == Recurrence.WEEKLY else 1,
        window.day_of_week if window.day_of_week is not None else -1,
        window.specific_date or date.min,
        window.start_time,
    )


class AvailabilityService:
    """Service for managing tutor availability windows and time off"""

    def __init__(self, store: SchedulingStore, max_range_days: Optional[int] = None):
        self.store = store
        self.max_range_days = max_range_days or settings.AVAILABILITY_MAX_RANGE_DAYS
        self._write_lock = asyncio.Lock()

    async def add_window(self, window: AvailabilityWindow) -> AvailabilityWindow:
        """Store a new window; raises OverlapError if it collides with an active one"""
        window.validate()

        async with self._write_lock:
            existing = await self.store.list_windows(window.tutor_id)
            timezones = {w.timezone for w in existing}
            if timezones and window.timezone not in timezones:
                raise ValidationError(
                    "All availability windows of a tutor must use the same timezone",
                    {"timezone": sorted(timezones)[0]},
                )
            for other in existing:
                if windows_conflict(window, other):
                    logger.info(f"Rejected availability window for tutor {window.tutor_id}: overlaps {other.id}")
                    raise OverlapError(
                        "Availability window overlaps an existing window",
                        {"window_id": str(other.id)},
                    )
            await self.store.add_window(window)

        logger.info(
            f"Created {window.recurrence.value} availability {window.id} for tutor {window.tutor_id} "
            f"({window.start_time:%H:%M}-{window.end_time:%H:%M} {window.timezone})"
        )
        return window

    async def remove_window(self, window_id: uuid.UUID, tutor_id: uuid.UUID) -> None:
        """Soft-delete a window owned by ``tutor_id``"""
        window = await self.store.get_window(window_id)
        if window is None or not window.is_active:
            raise NotFoundError("Availability", str(window_id))
        if window.tutor_id != tutor_id:
            raise AuthorizationError("Availability does not belong to this tutor")

        await self.store.deactivate_window(window_id)
        logger.info(f"Deleted availability {window_id} for tutor {tutor_id}")

    async def list_windows(self, tutor_id: uuid.UUID) -> List[AvailabilityWindow]:
        windows = await self.store.list_windows(tutor_id)
        return sorted(windows, key=_window_sort_key)

    async def add_time_off(self, tutor_id: uuid.UUID, start_at: datetime, end_at: datetime) -> TimeOffBlock:
        interval = Interval.utc(start_at, end_at)
        block = TimeOffBlock(tutor_id=tutor_id, start_at=interval.start, end_at=interval.end)
        await self.store.add_time_off(block)
        logger.info(f"Created time off {block.id} for tutor {tutor_id}")
        return block

    async def list_time_off(self, tutor_id: uuid.UUID) -> Sequence[TimeOffBlock]:
        return await self.store.list_time_off(tutor_id)

    async def list_effective_windows(
        self,
        tutor_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Interval]:
        """Concrete UTC intervals in which the tutor can be booked"""
        requested = Interval.utc(range_start, range_end)
        if requested.end - requested.start > timedelta(days=self.max_range_days):
            raise ValidationError(f"Date range cannot exceed {self.max_range_days} days")

        windows = await self.store.list_windows(tutor_id)
        time_off = await self.store.list_time_off(tutor_id, requested.start, requested.end)
        return materialize_windows(windows, requested.start, requested.end, time_off)

"""Half-open interval helpers.

Every instant handled by the scheduling core is a timezone-aware UTC
``datetime``; an :class:`Interval` is ``[start, end)`` so two sessions that
touch (10:00-11:00 and 11:00-12:00) never overlap.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List

from app.core.exceptions import ValidationError


def ensure_utc(value: datetime, field: str = "datetime") -> datetime:
    """Return ``value`` converted to UTC; naive datetimes are rejected."""
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be a datetime", {"field": field})
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{field} must be timezone-aware", {"field": field})
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if not self.start < self.end:
            raise ValidationError(
                "Start time must be before end time",
                {"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @classmethod
    def utc(cls, start: datetime, end: datetime) -> "Interval":
        return cls(ensure_utc(start, "start"), ensure_utc(end, "end"))

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def clip(self, start: datetime, end: datetime):
        """Intersection with ``[start, end)``, or None when empty."""
        lo = max(self.start, start)
        hi = min(self.end, end)
        if lo < hi:
            return Interval(lo, hi)
        return None


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def coalesce(intervals: Iterable[Interval]) -> List[Interval]:
    """Merge overlapping and adjacent intervals into a sorted disjoint list."""
    merged: List[Interval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = Interval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def covers(intervals: Iterable[Interval], target: Interval) -> bool:
    """True when ``target`` lies entirely inside the union of ``intervals``."""
    return any(block.contains(target) for block in coalesce(intervals))


def subtract(intervals: Iterable[Interval], holes: Iterable[Interval]) -> List[Interval]:
    """Remove every hole from every interval; the result stays sorted."""
    holes = coalesce(holes)
    remaining: List[Interval] = []
    for interval in sorted(intervals):
        pieces = [interval]
        for hole in holes:
            if hole.start >= interval.end:
                break
            next_pieces = []
            for piece in pieces:
                if not overlaps(piece, hole):
                    next_pieces.append(piece)
                    continue
                if piece.start < hole.start:
                    next_pieces.append(Interval(piece.start, hole.start))
                if hole.end < piece.end:
                    next_pieces.append(Interval(hole.end, piece.end))
            pieces = next_pieces
        remaining.extend(pieces)
    return sorted(remaining)


def slot_key(tutor_id, start: datetime, end: datetime) -> str:
    """Canonical identifier for a tutor's ``[start, end)`` slot."""
    start = ensure_utc(start, "start")
    end = ensure_utc(end, "end")
    return f"{tutor_id}:{start.isoformat()}:{end.isoformat()}"


def split_slots(intervals: Iterable[Interval], duration: timedelta, step: timedelta) -> List[Interval]:
    """Every ``duration`` long slot inside ``intervals``, starting every ``step``."""
    slots: List[Interval] = []
    for interval in sorted(intervals):
        start = interval.start
        while start + duration <= interval.end:
            slots.append(Interval(start, start + duration))
            start += step
    return slots

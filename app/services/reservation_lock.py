"""Short-lived claims on a tutor's time.

A claim is the single point of mutual exclusion for booking: it is taken
before availability is verified, held only while one booking is validated and
written, and expires on its own after a TTL so a crashed holder never blocks a
slot for long.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar, Union
import logging
import threading
import uuid

from app.core.config import settings
from app.core.exceptions import AlreadyClaimed, ClaimExpiredError, ValidationError
from app.core.intervals import Interval, overlaps, slot_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LockToken:
    token: str
    tutor_id: uuid.UUID
    slot_key: str
    holder_id: uuid.UUID
    start: datetime
    end: datetime
    expires_at: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ReservationLock:
    """In-process lock table keyed by tutor and slot key.

    Every mutation happens under one mutex, so a claim is a single
    compare-and-set: either no live overlapping record exists and ours is
    stored, or the claim fails with AlreadyClaimed.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.default_ttl = timedelta(seconds=ttl_seconds or settings.RESERVATION_LOCK_TTL_SECONDS)
        self.clock = clock
        self._mutex = threading.Lock()
        self._records: Dict[uuid.UUID, Dict[str, LockToken]] = {}

    def try_claim(
        self,
        tutor_id: uuid.UUID,
        start: datetime,
        end: datetime,
        holder_id: uuid.UUID,
        ttl: Union[timedelta, float, None] = None,
    ) -> LockToken:
        interval = Interval.utc(start, end)
        key = slot_key(tutor_id, interval.start, interval.end)
        ttl = self._coerce_ttl(ttl)

        with self._mutex:
            now = self.clock()
            records = self._records.setdefault(tutor_id, {})
            self._drop_expired(records, now)
            for record in records.values():
                if overlaps(record.interval, interval):
                    logger.info(f"Claim on {key} by {holder_id} rejected: held by {record.holder_id}")
                    raise AlreadyClaimed(
                        "This time slot is being booked by someone else",
                        {"slot_key": record.slot_key, "expires_at": record.expires_at.isoformat()},
                    )
            token = LockToken(
                token=uuid.uuid4().hex,
                tutor_id=tutor_id,
                slot_key=key,
                holder_id=holder_id,
                start=interval.start,
                end=interval.end,
                expires_at=now + ttl,
            )
            records[key] = token

        logger.debug(f"Claimed {key} for {holder_id} until {token.expires_at.isoformat()}")
        return token

    async def commit(self, token: LockToken, persist: Callable[[], Awaitable[T]]) -> T:
        """Run ``persist`` while the claim is live, then drop the claim.

        The claim is dropped whether or not ``persist`` succeeds.
        """
        self._ensure_live(token)
        try:
            return await persist()
        finally:
            self.release(token)

    def release(self, token: LockToken) -> bool:
        """Drop the claim if ``token`` still owns it; safe to call twice"""
        with self._mutex:
            records = self._records.get(token.tutor_id)
            if not records:
                return False
            current = records.get(token.slot_key)
            if current is None or current.token != token.token:
                return False
            del records[token.slot_key]
            if not records:
                del self._records[token.tutor_id]
        return True

    def is_live(self, token: LockToken) -> bool:
        with self._mutex:
            current = self._records.get(token.tutor_id, {}).get(token.slot_key)
            return current is not None and current.token == token.token and not current.is_expired(self.clock())

    def live_claims(self, tutor_id: uuid.UUID) -> List[LockToken]:
        with self._mutex:
            now = self.clock()
            records = self._records.get(tutor_id, {})
            return sorted(
                (record for record in records.values() if not record.is_expired(now)),
                key=lambda record: record.start,
            )

    def purge_expired(self) -> int:
        """Remove every expired claim; returns how many were removed"""
        removed = 0
        with self._mutex:
            now = self.clock()
            for tutor_id in list(self._records):
                records = self._records[tutor_id]
                removed += self._drop_expired(records, now)
                if not records:
                    del self._records[tutor_id]
        if removed:
            logger.info(f"Released {removed} expired slot claims")
        return removed

    def _ensure_live(self, token: LockToken) -> None:
        with self._mutex:
            records = self._records.get(token.tutor_id, {})
            current = records.get(token.slot_key)
            if current is None or current.token != token.token:
                raise ClaimExpiredError("Slot claim is no longer held", {"slot_key": token.slot_key})
            if current.is_expired(self.clock()):
                del records[token.slot_key]
                raise ClaimExpiredError("Slot claim expired before commit", {"slot_key": token.slot_key})

    def _coerce_ttl(self, ttl) -> timedelta:
        if ttl is None:
            return self.default_ttl
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        if ttl <= timedelta(0):
            raise ValidationError("Claim TTL must be positive")
        return ttl

    @staticmethod
    def _drop_expired(records: Dict[str, LockToken], now: datetime) -> int:
        expired = [key for key, record in records.items() if record.is_expired(now)]
        for key in expired:
            del records[key]
        return len(expired)

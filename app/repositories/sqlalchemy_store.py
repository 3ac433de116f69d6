from datetime import datetime, timezone
from typing import Iterable, List, Optional
import logging
import uuid

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import AsyncSessionLocal
from app.core.exceptions import NotFoundError, OverlapError, StaleVersionError
from app.domain import availability as domain_availability
from app.domain import booking as domain_booking
from app.domain.booking import ACTIVE_STATUSES, BookingStatus
from app.models.availability import AvailabilityWindow, TimeOffBlock
from app.models.booking import Booking
from app.repositories.base import SchedulingStore

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands DateTime(timezone=True) columns back naive; everything stored is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _window_to_domain(row: AvailabilityWindow) -> domain_availability.AvailabilityWindow:
    return domain_availability.AvailabilityWindow(
        id=row.id,
        tutor_id=row.tutor_id,
        start_time=row.start_time,
        end_time=row.end_time,
        recurrence=row.recurrence,
        day_of_week=row.day_of_week,
        specific_date=row.specific_date,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        timezone=row.timezone,
        is_active=row.is_active,
        created_at=_aware(row.created_at),
    )


def _time_off_to_domain(row: TimeOffBlock) -> domain_availability.TimeOffBlock:
    return domain_availability.TimeOffBlock(
        id=row.id,
        tutor_id=row.tutor_id,
        start_at=_aware(row.start_at),
        end_at=_aware(row.end_at),
    )


def _booking_to_domain(row: Booking) -> domain_booking.Booking:
    return domain_booking.Booking(
        id=row.id,
        tutor_id=row.tutor_id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        scheduled_start=_aware(row.scheduled_start),
        scheduled_end=_aware(row.scheduled_end),
        status=row.status,
        version=row.version,
        notes=row.notes,
        cancellation_reason=row.cancellation_reason,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlAlchemySchedulingStore(SchedulingStore):
    """Scheduling store over the async SQLAlchemy models.

    Each call runs in its own transaction. On PostgreSQL the booking overlap
    guard is best complemented by an exclusion constraint on
    ``(tutor_id, tstzrange(scheduled_start, scheduled_end))``.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def add_window(self, window: domain_availability.AvailabilityWindow) -> domain_availability.AvailabilityWindow:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(AvailabilityWindow(
                    id=window.id,
                    tutor_id=window.tutor_id,
                    start_time=window.start_time,
                    end_time=window.end_time,
                    recurrence=window.recurrence,
                    day_of_week=window.day_of_week,
                    specific_date=window.specific_date,
                    valid_from=window.valid_from,
                    valid_until=window.valid_until,
                    timezone=window.timezone,
                    is_active=window.is_active,
                    created_at=window.created_at,
                ))
        return window

    async def get_window(self, window_id: uuid.UUID) -> Optional[domain_availability.AvailabilityWindow]:
        async with self.session_factory() as session:
            row = await session.get(AvailabilityWindow, window_id)
            return _window_to_domain(row) if row else None

    async def list_windows(self, tutor_id: uuid.UUID) -> List[domain_availability.AvailabilityWindow]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AvailabilityWindow).where(
                    and_(
                        AvailabilityWindow.tutor_id == tutor_id,
                        AvailabilityWindow.is_active.is_(True),
                    )
                )
            )
            return [_window_to_domain(row) for row in result.scalars().all()]

    async def deactivate_window(self, window_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                row = await session.get(AvailabilityWindow, window_id)
                if row is None:
                    raise NotFoundError("Availability", str(window_id))
                row.is_active = False

    async def add_time_off(self, block: domain_availability.TimeOffBlock) -> domain_availability.TimeOffBlock:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(TimeOffBlock(
                    id=block.id,
                    tutor_id=block.tutor_id,
                    start_at=block.start_at,
                    end_at=block.end_at,
                ))
        return block

    async def list_time_off(
        self,
        tutor_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[domain_availability.TimeOffBlock]:
        query = select(TimeOffBlock).where(TimeOffBlock.tutor_id == tutor_id)
        if start is not None:
            query = query.where(TimeOffBlock.end_at > start)
        if end is not None:
            query = query.where(TimeOffBlock.start_at < end)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(TimeOffBlock.start_at))
            return [_time_off_to_domain(row) for row in result.scalars().all()]

    async def add_booking(self, booking: domain_booking.Booking) -> domain_booking.Booking:
        async with self.session_factory() as session:
            async with session.begin():
                conflict = None
                if booking.is_active:
                    conflict = (await session.execute(
                        select(Booking.id).where(
                            and_(
                                Booking.tutor_id == booking.tutor_id,
                                Booking.status.in_(list(ACTIVE_STATUSES)),
                                Booking.scheduled_start < booking.scheduled_end,
                                Booking.scheduled_end > booking.scheduled_start,
                            )
                        ).limit(1)
                    )).scalar_one_or_none()
                if conflict is not None:
                    raise OverlapError(
                        "Tutor already has a booking in this time range",
                        {"booking_id": str(conflict)},
                    )
                session.add(Booking(
                    id=booking.id,
                    tutor_id=booking.tutor_id,
                    student_id=booking.student_id,
                    subject_id=booking.subject_id,
                    scheduled_start=booking.scheduled_start,
                    scheduled_end=booking.scheduled_end,
                    status=booking.status,
                    version=booking.version,
                    notes=booking.notes,
                    cancellation_reason=booking.cancellation_reason,
                    created_at=booking.created_at,
                ))
        return booking

    async def get_booking(self, booking_id: uuid.UUID) -> Optional[domain_booking.Booking]:
        async with self.session_factory() as session:
            row = await session.get(Booking, booking_id)
            return _booking_to_domain(row) if row else None

    async def update_booking(self, booking: domain_booking.Booking, expected_version: int) -> domain_booking.Booking:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Booking)
                    .where(and_(Booking.id == booking.id, Booking.version == expected_version))
                    .values(
                        status=booking.status,
                        version=booking.version,
                        notes=booking.notes,
                        cancellation_reason=booking.cancellation_reason,
                        updated_at=booking.updated_at or datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    current = await session.get(Booking, booking.id)
                    if current is None:
                        raise NotFoundError("Booking", str(booking.id))
                    logger.info(
                        f"Rejected stale write to booking {booking.id}: "
                        f"expected version {expected_version}, found {current.version}"
                    )
                    raise StaleVersionError(expected_version, current.version)
        return booking

    async def list_bookings_for_tutor(
        self,
        tutor_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[domain_booking.Booking]:
        query = select(Booking).where(Booking.tutor_id == tutor_id)
        if statuses is not None:
            query = query.where(Booking.status.in_(list(statuses)))
        if start is not None:
            query = query.where(Booking.scheduled_end > start)
        if end is not None:
            query = query.where(Booking.scheduled_start < end)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Booking.scheduled_start))
            return [_booking_to_domain(row) for row in result.scalars().all()]

    async def list_bookings_for_student(
        self,
        student_id: uuid.UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[domain_booking.Booking]:
        query = select(Booking).where(Booking.student_id == student_id)
        if statuses is not None:
            query = query.where(Booking.status.in_(list(statuses)))
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Booking.scheduled_start))
            return [_booking_to_domain(row) for row in result.scalars().all()]

    async def list_due_bookings(self, now: datetime) -> List[domain_booking.Booking]:
        query = select(Booking).where(
            or_(
                and_(Booking.status == BookingStatus.REQUESTED, Booking.scheduled_start <= now),
                and_(Booking.status == BookingStatus.CONFIRMED, Booking.scheduled_start <= now),
                and_(Booking.status == BookingStatus.IN_PROGRESS, Booking.scheduled_end <= now),
            )
        )
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Booking.scheduled_start))
            return [_booking_to_domain(row) for row in result.scalars().all()]


def build_store(session_factory: async_sessionmaker = None) -> SqlAlchemySchedulingStore:
    return SqlAlchemySchedulingStore(session_factory or AsyncSessionLocal)

from datetime import datetime, timedelta
from typing import Callable, List, Optional
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    OutsideWindowError,
    OverlapError,
    StaleVersionError,
    StudentConflictError,
    ValidationError,
)
from app.core.intervals import Interval, split_slots
from app.domain.actor import Actor, UserRole
from app.domain.availability import AvailabilityWindow, TimeOffBlock
from app.domain.booking import Booking, BookingStatus
from app.domain.events import BookingEvent
from app.repositories.base import SchedulingStore
from app.services.availability_service import AvailabilityService
from app.services.booking_state import BookingAction, BookingPolicy, apply_transition
from app.services.conflict_service import AvailabilityCheck, ConflictService
from app.services.notification_service import NotificationService
from app.services.reservation_lock import ReservationLock, utcnow

logger = logging.getLogger(__name__)


class SchedulingService:
    """Booking engine for availability, slot claims and the session lifecycle.

    A booking request claims the slot first, verifies it against committed
    bookings while the claim is held, then writes the booking and drops the
    claim. Errors are raised to the caller; nothing is retried here.
    """

    def __init__(
        self,
        store: SchedulingStore,
        lock: Optional[ReservationLock] = None,
        notifications: Optional[NotificationService] = None,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.clock = clock
        self.lock = lock or ReservationLock(clock=clock)
        self.notifications = notifications or NotificationService()
        self.policy = policy or BookingPolicy.from_settings(settings)
        self.availability_service = AvailabilityService(store)
        self.conflict_service = ConflictService(store, self.availability_service)
        self.min_notice = timedelta(minutes=settings.MIN_BOOKING_NOTICE_MINUTES)
        self.max_session = timedelta(minutes=settings.MAX_SESSION_MINUTES)
        self.slot_step = timedelta(minutes=settings.SLOT_STEP_MINUTES)

    # Availability

    async def propose_availability(self, actor: Actor, window: AvailabilityWindow) -> AvailabilityWindow:
        self._require_tutor(actor, window.tutor_id)
        return await self.availability_service.add_window(window)

    async def remove_availability(self, actor: Actor, window_id: uuid.UUID) -> None:
        self._require_tutor(actor, actor.actor_id)
        await self.availability_service.remove_window(window_id, actor.actor_id)

    async def add_time_off(self, actor: Actor, start_at: datetime, end_at: datetime) -> TimeOffBlock:
        self._require_tutor(actor, actor.actor_id)
        return await self.availability_service.add_time_off(actor.actor_id, start_at, end_at)

    async def list_windows(self, tutor_id: uuid.UUID) -> List[AvailabilityWindow]:
        return await self.availability_service.list_windows(tutor_id)

    async def list_availability(
        self,
        tutor_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Interval]:
        return await self.availability_service.list_effective_windows(tutor_id, range_start, range_end)

    async def list_bookable_slots(
        self,
        tutor_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
        duration_minutes: Optional[int] = None,
    ) -> List[Interval]:
        """Free time a student could book; without a duration the free
        intervals come back whole, otherwise they are cut into slots of
        that length every ``SLOT_STEP_MINUTES``."""
        free = await self.conflict_service.free_intervals(tutor_id, range_start, range_end)
        if duration_minutes is None:
            return free
        duration = timedelta(minutes=duration_minutes)
        if duration <= timedelta(0) or duration > self.max_session:
            raise ValidationError(
                f"Slot duration must be between 1 and {int(self.max_session.total_seconds() // 60)} minutes",
                {"duration_minutes": duration_minutes},
            )
        return split_slots(free, duration, self.slot_step)

    # Bookings

    async def request_booking(
        self,
        actor: Actor,
        tutor_id: uuid.UUID,
        subject_id: uuid.UUID,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
    ) -> Booking:
        """Create a REQUESTED booking for ``[start, end)``"""
        if actor.role != UserRole.STUDENT or actor.actor_id is None:
            raise AuthorizationError("Only students can book sessions")

        interval = Interval.utc(start, end)
        now = self.clock()
        if interval.start < now + self.min_notice:
            raise ValidationError("Session must start in the future", {"start": interval.start.isoformat()})
        if interval.end - interval.start > self.max_session:
            raise ValidationError(f"Session cannot be longer than {int(self.max_session.total_seconds() // 60)} minutes")

        clash = await self.conflict_service.find_student_conflict(actor.actor_id, interval.start, interval.end)
        if clash is not None:
            raise StudentConflictError(
                "You already have a session booked at this time",
                {"booking_id": str(clash.id)},
            )

        token = self.lock.try_claim(tutor_id, interval.start, interval.end, holder_id=actor.actor_id)
        try:
            check = await self.conflict_service.check_available(tutor_id, interval.start, interval.end)
            if check == AvailabilityCheck.OUTSIDE_WINDOW:
                raise OutsideWindowError(
                    "Tutor is not available at this time",
                    {"status": check.value},
                )
            if check == AvailabilityCheck.OVERLAPS_BOOKING:
                raise OverlapError(
                    "Tutor already has a booking in this time range",
                    {"status": check.value},
                )

            booking = Booking(
                tutor_id=tutor_id,
                student_id=actor.actor_id,
                subject_id=subject_id,
                scheduled_start=interval.start,
                scheduled_end=interval.end,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            booking = await self.lock.commit(token, lambda: self.store.add_booking(booking))
        finally:
            self.lock.release(token)

        logger.info(f"Booking {booking.id} requested by student {actor.actor_id} with tutor {tutor_id}")
        self._emit(booking, None, actor)
        return booking

    async def respond_to_request(
        self,
        actor: Actor,
        booking_id: uuid.UUID,
        accept: bool,
        expected_version: int,
    ) -> Booking:
        action = BookingAction.CONFIRM if accept else BookingAction.REJECT
        return await self._transition(booking_id, action, actor, expected_version)

    async def cancel_booking(
        self,
        actor: Actor,
        booking_id: uuid.UUID,
        expected_version: int,
        reason: Optional[str] = None,
    ) -> Booking:
        return await self._transition(booking_id, BookingAction.CANCEL, actor, expected_version, reason)

    async def start_session(self, actor: Actor, booking_id: uuid.UUID, expected_version: int) -> Booking:
        return await self._transition(booking_id, BookingAction.START, actor, expected_version)

    async def complete_session(self, actor: Actor, booking_id: uuid.UUID, expected_version: int) -> Booking:
        return await self._transition(booking_id, BookingAction.COMPLETE, actor, expected_version)

    async def get_booking(self, actor: Actor, booking_id: uuid.UUID) -> Booking:
        booking = await self._load(booking_id)
        if actor.role not in (UserRole.ADMIN, UserRole.SYSTEM) and not booking.is_party(actor.actor_id):
            raise AuthorizationError("Not authorized to view this booking")
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        role: str,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        statuses = [status] if status else None
        if role == UserRole.STUDENT.value:
            return await self.store.list_bookings_for_student(actor.actor_id, statuses)
        if role == UserRole.TUTOR.value:
            return await self.store.list_bookings_for_tutor(actor.actor_id, statuses)
        raise ValidationError("Role must be 'student' or 'tutor'")

    async def advance_due_bookings(self, now: Optional[datetime] = None) -> int:
        """Start sessions whose time has come, complete the ones that ended
        and expire requests the tutor never answered"""
        now = now or self.clock()
        system = Actor.system()
        advanced = 0
        for booking in await self.store.list_due_bookings(now):
            try:
                if booking.status == BookingStatus.REQUESTED:
                    await self._apply(
                        booking, BookingAction.EXPIRE, system, booking.version, now,
                        reason="Request expired before the tutor responded",
                    )
                    advanced += 1
                    continue
                if booking.status == BookingStatus.CONFIRMED:
                    booking = await self._apply(booking, BookingAction.START, system, booking.version, now)
                    advanced += 1
                if booking.status == BookingStatus.IN_PROGRESS and booking.scheduled_end <= now:
                    await self._apply(booking, BookingAction.COMPLETE, system, booking.version, now)
                    advanced += 1
            except (StaleVersionError, InvalidTransitionError) as e:
                # a participant moved the booking concurrently; the next run sees the new state
                logger.info(f"Skipped advancing booking {booking.id}: {e}")
        return advanced

    # Internals

    async def _transition(
        self,
        booking_id: uuid.UUID,
        action: BookingAction,
        actor: Actor,
        expected_version: int,
        reason: Optional[str] = None,
    ) -> Booking:
        booking = await self._load(booking_id)
        return await self._apply(booking, action, actor, expected_version, self.clock(), reason)

    async def _apply(
        self,
        booking: Booking,
        action: BookingAction,
        actor: Actor,
        expected_version: int,
        now: datetime,
        reason: Optional[str] = None,
    ) -> Booking:
        updated = apply_transition(booking, action, actor, now, expected_version, self.policy, reason)
        await self.store.update_booking(updated, expected_version)
        logger.info(
            f"Booking {booking.id} {booking.status.value} -> {updated.status.value} "
            f"by {actor.role.value} (version {updated.version})"
        )
        self._emit(updated, booking.status, actor)
        return updated

    async def _load(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    def _emit(self, booking: Booking, from_state: Optional[BookingStatus], actor: Actor) -> None:
        self.notifications.publish(BookingEvent(
            booking_id=booking.id,
            from_state=from_state,
            to_state=booking.status,
            actor_id=actor.actor_id,
            timestamp=self.clock(),
        ))

    @staticmethod
    def _require_tutor(actor: Actor, tutor_id: Optional[uuid.UUID]) -> None:
        if actor.role != UserRole.TUTOR or actor.actor_id is None or actor.actor_id != tutor_id:
            raise AuthorizationError("Only the tutor can manage this availability")

from datetime import timedelta
import asyncio
import uuid

import pytest

from app.core.exceptions import (
    AlreadyClaimed,
    AuthorizationError,
    LateCancellationError,
    NotFoundError,
    OutsideWindowError,
    OverlapError,
    StaleVersionError,
    StudentConflictError,
    ValidationError,
)
from app.core.intervals import Interval
from app.domain.actor import Actor, UserRole
from app.domain.booking import BookingStatus
from app.services.conflict_service import AvailabilityCheck

from tests._utils import MONDAY, utc, weekly_window


@pytest.fixture
async def monday_window(service, tutor, tutor_id):
    return await service.propose_availability(tutor, weekly_window(tutor_id, day_of_week=1))


async def book(service, student, tutor_id, subject_id, start_hour, start_minute=0, minutes=60):
    start = utc(MONDAY, start_hour, start_minute)
    return await service.request_booking(student, tutor_id, subject_id, start, start + timedelta(minutes=minutes))


class TestRequestBooking:
    async def test_request_creates_requested_booking(self, service, monday_window, student, tutor_id, subject_id):
        booking = await book(service, student, tutor_id, subject_id, 10)

        assert booking.status == BookingStatus.REQUESTED
        assert booking.version == 1
        assert booking.student_id == student.actor_id
        assert await service.store.get_booking(booking.id) == booking
        assert service.lock.live_claims(tutor_id) == []

    async def test_overlap_with_confirmed_booking(
        self, service, monday_window, tutor, student, other_student, tutor_id, subject_id
    ):
        first = await book(service, student, tutor_id, subject_id, 10)
        confirmed = await service.respond_to_request(tutor, first.id, accept=True, expected_version=1)
        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.version == 2

        with pytest.raises(OverlapError) as exc_info:
            await book(service, other_student, tutor_id, subject_id, 10, 30)

        assert exc_info.value.details["status"] == "overlaps_booking"
        assert service.lock.live_claims(tutor_id) == []

    async def test_pending_request_also_blocks_the_slot(
        self, service, monday_window, student, other_student, tutor_id, subject_id
    ):
        await book(service, student, tutor_id, subject_id, 10)

        with pytest.raises(OverlapError):
            await book(service, other_student, tutor_id, subject_id, 10, 30)

    async def test_in_flight_claim_blocks_request(self, service, monday_window, student, tutor_id, subject_id):
        service.lock.try_claim(tutor_id, utc(MONDAY, 11), utc(MONDAY, 12), holder_id=uuid.uuid4())

        with pytest.raises(AlreadyClaimed):
            await book(service, student, tutor_id, subject_id, 11)

        assert await service.store.list_bookings_for_tutor(tutor_id) == []

    async def test_back_to_back_sessions(self, service, monday_window, student, other_student, tutor_id, subject_id):
        await book(service, student, tutor_id, subject_id, 10)
        await book(service, other_student, tutor_id, subject_id, 11)

        assert len(await service.store.list_bookings_for_tutor(tutor_id)) == 2

    async def test_outside_window(self, service, monday_window, student, tutor_id, subject_id):
        with pytest.raises(OutsideWindowError) as exc_info:
            await book(service, student, tutor_id, subject_id, 11, 30)

        assert exc_info.value.details["status"] == "outside_window"

    async def test_time_off_blocks_booking(self, service, monday_window, tutor, student, tutor_id, subject_id):
        await service.add_time_off(tutor, utc(MONDAY, 10), utc(MONDAY, 11))

        with pytest.raises(OutsideWindowError):
            await book(service, student, tutor_id, subject_id, 10)
        await book(service, student, tutor_id, subject_id, 11)

    async def test_past_start_is_rejected(self, service, clock, monday_window, student, tutor_id, subject_id):
        clock.set(utc(MONDAY, 10, 30))

        with pytest.raises(ValidationError):
            await book(service, student, tutor_id, subject_id, 10)

    async def test_overlong_session_is_rejected(self, service, monday_window, student, tutor_id, subject_id):
        with pytest.raises(ValidationError):
            await book(service, student, tutor_id, subject_id, 9, minutes=5 * 60)

    async def test_only_students_request(self, service, monday_window, tutor, tutor_id, subject_id):
        with pytest.raises(AuthorizationError):
            await book(service, tutor, tutor_id, subject_id, 10)

    async def test_student_cannot_double_book_across_tutors(self, service, monday_window, student, tutor_id, subject_id):
        second_tutor = Actor(role=UserRole.TUTOR, actor_id=uuid.uuid4())
        await service.propose_availability(second_tutor, weekly_window(second_tutor.actor_id, day_of_week=1))
        first = await book(service, student, tutor_id, subject_id, 10)

        with pytest.raises(StudentConflictError) as exc_info:
            await book(service, student, second_tutor.actor_id, subject_id, 10, 30)

        assert exc_info.value.details["booking_id"] == str(first.id)
        assert await service.store.list_bookings_for_tutor(second_tutor.actor_id) == []
        assert service.lock.live_claims(second_tutor.actor_id) == []
        await book(service, student, second_tutor.actor_id, subject_id, 11)

    async def test_cancelled_booking_does_not_block_the_student(
        self, service, monday_window, tutor, student, tutor_id, subject_id
    ):
        second_tutor = Actor(role=UserRole.TUTOR, actor_id=uuid.uuid4())
        await service.propose_availability(second_tutor, weekly_window(second_tutor.actor_id, day_of_week=1))
        first = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, first.id, accept=False, expected_version=1)

        booking = await book(service, student, second_tutor.actor_id, subject_id, 10)

        assert booking.status == BookingStatus.REQUESTED

    async def test_concurrent_requests_for_one_slot(self, service, monday_window, tutor_id, subject_id):
        students = [Actor(role=UserRole.STUDENT, actor_id=uuid.uuid4()) for _ in range(8)]

        results = await asyncio.gather(
            *(book(service, s, tutor_id, subject_id, 10) for s in students),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert all(isinstance(f, (AlreadyClaimed, OverlapError)) for f in failures)


class TestLifecycle:
    async def test_events_follow_transitions(
        self, service, notifications, recorder, monday_window, tutor, student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)
        await notifications.drain()

        assert recorder.transitions(booking.id) == [
            (None, BookingStatus.REQUESTED),
            (BookingStatus.REQUESTED, BookingStatus.CONFIRMED),
        ]
        assert recorder.events[-1].actor_id == tutor.actor_id

    async def test_rejected_request_frees_slot(
        self, service, monday_window, tutor, student, other_student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        rejected = await service.respond_to_request(tutor, booking.id, accept=False, expected_version=1)

        assert rejected.status == BookingStatus.REJECTED
        await book(service, other_student, tutor_id, subject_id, 10)

    async def test_concurrent_responses_conflict(self, service, monday_window, tutor, student, tutor_id, subject_id):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)

        with pytest.raises(StaleVersionError):
            await service.cancel_booking(student, booking.id, expected_version=1)

    async def test_cancel_before_deadline_frees_slot(
        self, service, clock, monday_window, tutor, student, other_student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)
        clock.set(utc(MONDAY, 7, 59, 59))

        cancelled = await service.cancel_booking(student, booking.id, expected_version=2, reason="conflict")

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == "conflict"
        assert cancelled.version == 3
        await book(service, other_student, tutor_id, subject_id, 10)

    async def test_cancel_inside_lead_time(self, service, clock, monday_window, tutor, student, tutor_id, subject_id):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)
        clock.set(utc(MONDAY, 8, 0, 1))

        with pytest.raises(LateCancellationError):
            await service.cancel_booking(student, booking.id, expected_version=2)
        assert (await service.store.get_booking(booking.id)).status == BookingStatus.CONFIRMED

    async def test_participant_starts_and_completes(
        self, service, clock, monday_window, tutor, student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)
        clock.set(utc(MONDAY, 10))

        started = await service.start_session(student, booking.id, expected_version=2)
        completed = await service.complete_session(tutor, booking.id, expected_version=3)

        assert started.status == BookingStatus.IN_PROGRESS
        assert completed.status == BookingStatus.COMPLETED
        assert completed.version == 4


class TestAdvanceDueBookings:
    async def test_starts_then_completes(
        self, service, clock, notifications, recorder, monday_window, tutor, student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)

        clock.set(utc(MONDAY, 10))
        assert await service.advance_due_bookings() == 1
        assert (await service.store.get_booking(booking.id)).status == BookingStatus.IN_PROGRESS

        clock.set(utc(MONDAY, 11))
        assert await service.advance_due_bookings() == 1
        assert (await service.store.get_booking(booking.id)).status == BookingStatus.COMPLETED

        await notifications.drain()
        assert recorder.transitions(booking.id)[-2:] == [
            (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS),
            (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
        ]
        assert recorder.events[-1].actor_id is None

    async def test_finished_session_moves_through_both_steps(
        self, service, clock, monday_window, tutor, student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        await service.respond_to_request(tutor, booking.id, accept=True, expected_version=1)

        assert await service.advance_due_bookings(now=utc(MONDAY, 12)) == 2
        final = await service.store.get_booking(booking.id)
        assert final.status == BookingStatus.COMPLETED
        assert final.version == 4

    async def test_unanswered_request_expires_at_start(
        self, service, notifications, recorder, monday_window, student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)

        assert await service.advance_due_bookings(now=utc(MONDAY, 9, 59)) == 0
        assert await service.advance_due_bookings(now=utc(MONDAY, 10)) == 1

        expired = await service.store.get_booking(booking.id)
        assert expired.status == BookingStatus.CANCELLED
        assert expired.version == 2
        assert expired.cancellation_reason
        assert await service.advance_due_bookings(now=utc(MONDAY, 12)) == 0
        await notifications.drain()
        assert recorder.transitions(booking.id)[-1] == (BookingStatus.REQUESTED, BookingStatus.CANCELLED)

    async def test_request_answered_concurrently_is_skipped(
        self, service, monday_window, tutor, student, tutor_id, subject_id, monkeypatch
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        stale_snapshot = await service.store.get_booking(booking.id)
        await service.respond_to_request(tutor, booking.id, accept=False, expected_version=1)

        async def due(now):
            return [stale_snapshot]

        monkeypatch.setattr(service.store, "list_due_bookings", due)

        assert await service.advance_due_bookings(now=utc(MONDAY, 10)) == 0
        assert (await service.store.get_booking(booking.id)).status == BookingStatus.REJECTED


class TestQueries:
    async def test_get_booking_visibility(
        self, service, monday_window, tutor, student, other_student, tutor_id, subject_id
    ):
        booking = await book(service, student, tutor_id, subject_id, 10)
        admin = Actor(role=UserRole.ADMIN, actor_id=uuid.uuid4())

        assert await service.get_booking(tutor, booking.id) == booking
        assert await service.get_booking(admin, booking.id) == booking
        with pytest.raises(AuthorizationError):
            await service.get_booking(other_student, booking.id)
        with pytest.raises(NotFoundError):
            await service.get_booking(admin, uuid.uuid4())

    async def test_list_bookings_by_role_and_status(
        self, service, monday_window, tutor, student, tutor_id, subject_id
    ):
        early = await book(service, student, tutor_id, subject_id, 9)
        late = await book(service, student, tutor_id, subject_id, 11)
        await service.respond_to_request(tutor, late.id, accept=True, expected_version=1)

        assert [b.id for b in await service.list_bookings(student, "student")] == [early.id, late.id]
        assert [b.id for b in await service.list_bookings(tutor, "tutor", BookingStatus.CONFIRMED)] == [late.id]
        with pytest.raises(ValidationError):
            await service.list_bookings(student, "admin")


class TestAvailabilityManagement:
    async def test_only_owner_manages_windows(self, service, monday_window, student, tutor_id):
        stranger = Actor(role=UserRole.TUTOR, actor_id=uuid.uuid4())

        with pytest.raises(AuthorizationError):
            await service.propose_availability(student, weekly_window(tutor_id, day_of_week=2))
        with pytest.raises(AuthorizationError):
            await service.propose_availability(stranger, weekly_window(tutor_id, day_of_week=2))
        with pytest.raises(AuthorizationError):
            await service.remove_availability(stranger, monday_window.id)

    async def test_removed_window_stops_new_bookings(
        self, service, monday_window, tutor, student, tutor_id, subject_id
    ):
        await service.remove_availability(tutor, monday_window.id)

        assert await service.list_windows(tutor_id) == []
        assert await service.list_availability(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23)) == []
        with pytest.raises(OutsideWindowError):
            await book(service, student, tutor_id, subject_id, 10)


class TestBookableSlots:
    async def test_free_intervals_exclude_active_bookings(
        self, service, monday_window, tutor, student, other_student, tutor_id, subject_id
    ):
        await book(service, student, tutor_id, subject_id, 10)
        rejected = await book(service, other_student, tutor_id, subject_id, 11)
        await service.respond_to_request(tutor, rejected.id, accept=False, expected_version=1)

        free = await service.list_bookable_slots(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23))

        assert free == [Interval(utc(MONDAY, 9), utc(MONDAY, 10)), Interval(utc(MONDAY, 11), utc(MONDAY, 12))]
        assert await service.list_availability(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23)) == [
            Interval(utc(MONDAY, 9), utc(MONDAY, 12))
        ]

    async def test_slots_step_through_free_time(self, service, monday_window, student, tutor_id, subject_id):
        await book(service, student, tutor_id, subject_id, 10, 30)

        slots = await service.list_bookable_slots(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23), duration_minutes=60)

        assert [(s.start, s.end) for s in slots] == [
            (utc(MONDAY, 9), utc(MONDAY, 10)),
            (utc(MONDAY, 9, 30), utc(MONDAY, 10, 30)),
        ]

    async def test_every_listed_slot_can_be_booked(self, service, monday_window, student, tutor_id, subject_id):
        await book(service, student, tutor_id, subject_id, 10)
        slots = await service.list_bookable_slots(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23), duration_minutes=30)

        for slot in slots:
            assert await service.conflict_service.check_available(tutor_id, slot.start, slot.end) == AvailabilityCheck.AVAILABLE
        assert len(slots) == 4

    async def test_invalid_duration_is_rejected(self, service, monday_window, tutor_id):
        with pytest.raises(ValidationError):
            await service.list_bookable_slots(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23), duration_minutes=0)
        with pytest.raises(ValidationError):
            await service.list_bookable_slots(tutor_id, utc(MONDAY, 0), utc(MONDAY, 23), duration_minutes=5 * 60)

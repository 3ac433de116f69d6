import uuid

import pytest

from app.domain.actor import Actor, UserRole
from app.repositories.memory import InMemorySchedulingStore
from app.services.booking_state import BookingPolicy
from app.services.notification_service import NotificationService
from app.services.reservation_lock import ReservationLock
from app.services.scheduling_service import SchedulingService

from tests._utils import CANCELLATION_LEAD, CLAIM_TTL_SECONDS, EventRecorder, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySchedulingStore()


@pytest.fixture
def tutor_id():
    return uuid.uuid4()


@pytest.fixture
def subject_id():
    return uuid.uuid4()


@pytest.fixture
def tutor(tutor_id):
    return Actor(role=UserRole.TUTOR, actor_id=tutor_id)


@pytest.fixture
def student():
    return Actor(role=UserRole.STUDENT, actor_id=uuid.uuid4())


@pytest.fixture
def other_student():
    return Actor(role=UserRole.STUDENT, actor_id=uuid.uuid4())


@pytest.fixture
def policy():
    return BookingPolicy(cancellation_lead=CANCELLATION_LEAD)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def notifications(recorder):
    return NotificationService(handlers=[recorder], max_attempts=3, retry_backoff_seconds=0)


@pytest.fixture
def lock(clock):
    return ReservationLock(ttl_seconds=CLAIM_TTL_SECONDS, clock=clock)


@pytest.fixture
def service(store, lock, notifications, policy, clock):
    return SchedulingService(store, lock=lock, notifications=notifications, policy=policy, clock=clock)

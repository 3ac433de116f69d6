"""Booking lifecycle rules.

REQUESTED -> CONFIRMED -> IN_PROGRESS -> COMPLETED, with REQUESTED -> REJECTED
and REQUESTED/CONFIRMED -> CANCELLED on the side. A request still unanswered
when its session starts is expired by the system into CANCELLED. COMPLETED,
REJECTED and CANCELLED are terminal. Every accepted transition returns a new
Booking whose version is one higher.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional, Tuple
import enum

from app.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    LateCancellationError,
    StaleVersionError,
)
from app.domain.actor import Actor, UserRole
from app.domain.booking import Booking, BookingStatus


class BookingAction(str, enum.Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    EXPIRE = "expire"


ACTION_TARGETS: Dict[BookingAction, BookingStatus] = {
    BookingAction.CONFIRM: BookingStatus.CONFIRMED,
    BookingAction.REJECT: BookingStatus.REJECTED,
    BookingAction.CANCEL: BookingStatus.CANCELLED,
    BookingAction.START: BookingStatus.IN_PROGRESS,
    BookingAction.COMPLETE: BookingStatus.COMPLETED,
    BookingAction.EXPIRE: BookingStatus.CANCELLED,
}

TRANSITIONS: Dict[Tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.REQUESTED, BookingAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.REQUESTED, BookingAction.REJECT): BookingStatus.REJECTED,
    (BookingStatus.REQUESTED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.REQUESTED, BookingAction.EXPIRE): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.START): BookingStatus.IN_PROGRESS,
    (BookingStatus.IN_PROGRESS, BookingAction.COMPLETE): BookingStatus.COMPLETED,
}

ALLOWED_ROLES: Dict[BookingAction, FrozenSet[UserRole]] = {
    BookingAction.CONFIRM: frozenset({UserRole.TUTOR}),
    BookingAction.REJECT: frozenset({UserRole.TUTOR}),
    BookingAction.CANCEL: frozenset({UserRole.TUTOR, UserRole.STUDENT}),
    BookingAction.START: frozenset({UserRole.SYSTEM, UserRole.TUTOR, UserRole.STUDENT}),
    BookingAction.COMPLETE: frozenset({UserRole.SYSTEM, UserRole.TUTOR, UserRole.STUDENT}),
    BookingAction.EXPIRE: frozenset({UserRole.SYSTEM}),
}


@dataclass(frozen=True)
class BookingPolicy:
    cancellation_lead: timedelta

    @classmethod
    def from_settings(cls, settings) -> "BookingPolicy":
        return cls(cancellation_lead=timedelta(minutes=settings.CANCELLATION_LEAD_MINUTES))


def next_status(status: BookingStatus, action: BookingAction) -> BookingStatus:
    try:
        return TRANSITIONS[(status, action)]
    except KeyError:
        raise InvalidTransitionError(status, ACTION_TARGETS[action]) from None


def _check_actor(booking: Booking, action: BookingAction, actor: Actor) -> None:
    if actor.role not in ALLOWED_ROLES[action]:
        raise AuthorizationError(
            f"{actor.role.value} cannot {action.value} a booking",
            {"role": actor.role.value, "action": action.value},
        )
    if actor.role == UserRole.TUTOR and actor.actor_id != booking.tutor_id:
        raise AuthorizationError("Only the booked tutor can do this")
    if actor.role == UserRole.STUDENT and actor.actor_id != booking.student_id:
        raise AuthorizationError("Only the booking student can do this")


def _check_timing(
    booking: Booking,
    action: BookingAction,
    actor: Actor,
    now: datetime,
    policy: BookingPolicy,
) -> None:
    target = ACTION_TARGETS[action]
    if action in (BookingAction.CONFIRM, BookingAction.REJECT):
        if now >= booking.scheduled_start:
            raise InvalidTransitionError(booking.status, target)
    elif action == BookingAction.CANCEL:
        deadline = booking.scheduled_start - policy.cancellation_lead
        if now >= deadline:
            raise LateCancellationError(
                "Booking can no longer be cancelled",
                {"deadline": deadline.isoformat()},
            )
    elif action in (BookingAction.START, BookingAction.EXPIRE):
        if now < booking.scheduled_start:
            raise InvalidTransitionError(booking.status, target)
    elif action == BookingAction.COMPLETE:
        if actor.is_system and now < booking.scheduled_end:
            raise InvalidTransitionError(booking.status, target)


def apply_transition(
    booking: Booking,
    action: BookingAction,
    actor: Actor,
    now: datetime,
    expected_version: int,
    policy: BookingPolicy,
    reason: Optional[str] = None,
) -> Booking:
    """Validate ``action`` against ``booking`` and return the updated booking.

    Checks run in order: version, transition table, actor, timing.
    """
    if expected_version != booking.version:
        raise StaleVersionError(expected_version, booking.version)

    target = next_status(booking.status, action)
    _check_actor(booking, action, actor)
    _check_timing(booking, action, actor, now, policy)

    changes = {"status": target, "version": booking.version + 1, "updated_at": now}
    if action in (BookingAction.CANCEL, BookingAction.EXPIRE) and reason:
        changes["cancellation_reason"] = reason
    return replace(booking, **changes)

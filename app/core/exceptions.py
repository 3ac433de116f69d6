from typing import Any, Dict, Optional


class TutoringException(Exception):
    """Base exception for the tutoring booking application"""

    code = "APP_ERROR"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(TutoringException):
    """Exception raised for malformed input such as inverted time ranges"""
    code = "VALIDATION_ERROR"


class NotFoundError(TutoringException):
    """Exception raised when a booking or window does not exist"""
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} with id {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class AuthorizationError(TutoringException):
    """Exception raised when an actor may not perform an action"""
    code = "AUTHORIZATION_ERROR"


class SchedulingError(TutoringException):
    """Exception raised for scheduling-related errors"""
    code = "SCHEDULING_ERROR"


class AvailabilityError(SchedulingError):
    """Exception raised for availability-related errors"""
    code = "AVAILABILITY_ERROR"


class OverlapError(AvailabilityError):
    """Raised when a window or booking overlaps an existing one"""
    code = "OVERLAP"


class OutsideWindowError(AvailabilityError):
    """Raised when a requested interval is not covered by the tutor's availability"""
    code = "OUTSIDE_WINDOW"


class StudentConflictError(SchedulingError):
    """Raised when a student already has an active session in the requested time"""
    code = "STUDENT_CONFLICT"


class AlreadyClaimed(SchedulingError):
    """Raised when another live claim holds an overlapping interval"""
    code = "ALREADY_CLAIMED"


class ClaimExpiredError(SchedulingError):
    """Raised when committing a claim whose lock is no longer live"""
    code = "CLAIM_EXPIRED"


class BookingError(TutoringException):
    """Exception raised for booking-related errors"""
    code = "BOOKING_ERROR"


class InvalidTransitionError(BookingError):
    """Raised when a booking cannot move from its current status to the requested one"""
    code = "INVALID_TRANSITION"

    def __init__(self, from_state, to_state):
        from_value = getattr(from_state, "value", from_state)
        to_value = getattr(to_state, "value", to_state)
        super().__init__(
            f"Cannot move booking from {from_value} to {to_value}",
            {"from": from_value, "to": to_value},
        )
        self.from_state = from_state
        self.to_state = to_state


class StaleVersionError(BookingError):
    """Raised when a write is based on an outdated booking version"""
    code = "STALE_VERSION"

    def __init__(self, expected: int, actual: Optional[int]):
        super().__init__(
            f"Booking version mismatch: expected {expected}, found {actual}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class LateCancellationError(BookingError):
    """Raised when cancellation is requested inside the cancellation lead time"""
    code = "LATE_CANCELLATION"

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid

from app.domain.booking import Booking, BookingStatus


class BookingRequest(BaseModel):
    tutor_id: uuid.UUID = Field(..., description="Tutor ID")
    subject_id: uuid.UUID = Field(..., description="Subject for the session")
    start_time: datetime = Field(..., description="Session start time (timezone-aware)")
    end_time: datetime = Field(..., description="Session end time (timezone-aware)")
    notes: Optional[str] = Field(None, description="Additional notes")


class BookingRespondRequest(BaseModel):
    accept: bool = Field(..., description="True to confirm, False to reject")
    expected_version: int = Field(..., ge=1, description="Booking version the tutor last saw")


class BookingCancelRequest(BaseModel):
    expected_version: int = Field(..., ge=1, description="Booking version the caller last saw")
    reason: Optional[str] = Field(None, description="Cancellation reason")


class BookingVersionRequest(BaseModel):
    expected_version: int = Field(..., ge=1, description="Booking version the caller last saw")


class BookingResponse(BaseModel):
    id: uuid.UUID = Field(..., description="Booking ID")
    tutor_id: uuid.UUID = Field(..., description="Tutor ID")
    student_id: uuid.UUID = Field(..., description="Student ID")
    subject_id: uuid.UUID = Field(..., description="Subject ID")
    scheduled_start: datetime = Field(..., description="Session start time (UTC)")
    scheduled_end: datetime = Field(..., description="Session end time (UTC)")
    status: BookingStatus = Field(..., description="Booking status")
    version: int = Field(..., description="Optimistic concurrency version")
    notes: Optional[str] = Field(None, description="Additional notes")
    cancellation_reason: Optional[str] = Field(None, description="Cancellation reason")
    created_at: datetime = Field(..., description="Creation time")
    updated_at: Optional[datetime] = Field(None, description="Last update time")

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
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
            updated_at=booking.updated_at,
        )

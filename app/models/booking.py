from sqlalchemy import Column, DateTime, Integer, Text, Enum, Index
from sqlalchemy.dialects.postgresql import UUID

from app.core.database import Base
from app.domain.booking import BookingStatus


class Booking(Base):
    __tablename__ = "bookings"

    # Parties
    student_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    tutor_id = Column(UUID(as_uuid=True), nullable=False)
    subject_id = Column(UUID(as_uuid=True), nullable=False)

    # Time information
    scheduled_start = Column(DateTime(timezone=True), nullable=False)  # UTC
    scheduled_end = Column(DateTime(timezone=True), nullable=False)  # UTC

    # Lifecycle
    status = Column(Enum(BookingStatus), default=BookingStatus.REQUESTED, nullable=False)
    version = Column(Integer, default=1, nullable=False)  # bumped on every mutation

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Booking(student_id={self.student_id}, tutor_id={self.tutor_id}, scheduled_start={self.scheduled_start}, status={self.status}, version={self.version})>"


Index('idx_bookings_tutor_start', Booking.tutor_id, Booking.scheduled_start)

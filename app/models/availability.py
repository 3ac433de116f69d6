from sqlalchemy import Column, String, DateTime, Date, Time, Integer, Boolean, Enum, Index
from sqlalchemy.dialects.postgresql import UUID

from app.core.database import Base
from app.domain.availability import Recurrence


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    # Owning tutor
    tutor_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # Wall-clock window in the tutor's timezone
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String, default="UTC", nullable=False)

    # Recurrence
    recurrence = Column(Enum(Recurrence), default=Recurrence.WEEKLY, nullable=False)
    day_of_week = Column(Integer, nullable=True)  # 0=Sunday .. 6=Saturday
    specific_date = Column(Date, nullable=True)
    valid_from = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)

    # Soft delete
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<AvailabilityWindow(tutor_id={self.tutor_id}, recurrence={self.recurrence}, start_time={self.start_time}, end_time={self.end_time})>"


class TimeOffBlock(Base):
    __tablename__ = "time_off_blocks"

    # Owning tutor
    tutor_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # Time information
    start_at = Column(DateTime(timezone=True), nullable=False)  # UTC
    end_at = Column(DateTime(timezone=True), nullable=False)  # UTC

    def __repr__(self):
        return f"<TimeOffBlock(tutor_id={self.tutor_id}, start_at={self.start_at}, end_at={self.end_at})>"


Index('idx_availability_windows_tutor_active', AvailabilityWindow.tutor_id, AvailabilityWindow.is_active)

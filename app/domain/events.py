from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid

from app.domain.booking import BookingStatus


@dataclass(frozen=True)
class BookingEvent:
    """Emitted once per booking state change; ``from_state`` is None on creation."""

    booking_id: uuid.UUID
    from_state: Optional[BookingStatus]
    to_state: BookingStatus
    actor_id: Optional[uuid.UUID]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        return {
            "booking_id": str(self.booking_id),
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "timestamp": self.timestamp.isoformat(),
        }

from dataclasses import dataclass
from typing import Optional
import enum
import uuid


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller: who is acting, and in which role."""

    role: UserRole
    actor_id: Optional[uuid.UUID] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=UserRole.SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.role == UserRole.SYSTEM

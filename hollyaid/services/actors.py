"""
Explicit actor identity passed into every mutation.
"""
import uuid
from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    EMPLOYEE = "employee"
    SPECIALIST = "specialist"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    user_id: uuid.UUID | None
    role: ActorRole
    email: str | None = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, role=ActorRole.SYSTEM)

    @property
    def email_domain(self) -> str | None:
        if not self.email or "@" not in self.email:
            return None
        return self.email.rsplit("@", 1)[1].strip().lower()

"""User model: practitioners, registered clients and administrators."""

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from dataclasses import dataclass
from datetime import datetime
from app.core.database import Base


class Role(str, enum.Enum):
    CLIENT = "client"
    PRACTITIONER = "practitioner"
    SUPER_ADMIN = "super_admin"


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.CLIENT.value, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


@dataclass(frozen=True)
class Caller:
    """Authenticated identity passed explicitly into every core operation."""
    id: uuid.UUID
    role: Role

    @classmethod
    def from_user(cls, user: "User") -> "Caller":
        return cls(id=user.id, role=Role(user.role))

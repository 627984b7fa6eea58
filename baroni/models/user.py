"""User model shared by fans, stars and admins."""

from sqlalchemy import Column, String, DateTime, Boolean, Integer
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime
from baroni.core.database import Base


class UserRole(str, enum.Enum):
    FAN = "fan"
    STAR = "star"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.FAN.value, index=True)
    country = Column(String, nullable=True)  # drives the UTC offset of a star's slots
    contact = Column(String, nullable=True)
    coin_balance = Column(Integer, nullable=False, default=0)
    fcm_token = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

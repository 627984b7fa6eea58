from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Enum, func
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum

from baroni.core.database import Base


class NotificationType(str, enum.Enum):
    SYSTEM = "system"
    APPOINTMENT = "appointment"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    event = Column(String, nullable=True)  # APPOINTMENT_CREATED, APPOINTMENT_COMPLETED, ...
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Enum(NotificationType, name="notification_type", values_callable=lambda e: [m.value for m in e]), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

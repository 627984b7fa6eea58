"""Availability calendar: one row per star per date, one child row per slot."""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
import enum
from datetime import datetime
from baroni.core.database import Base


class SlotStatus(str, enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    LOCKED = "locked"


class Availability(Base):
    __tablename__ = "availabilities"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_availability_user_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String, nullable=False, index=True)  # YYYY-MM-DD in the star's local calendar
    is_weekly = Column(Boolean, nullable=False, default=False)
    is_daily = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    time_slots = relationship(
        "TimeSlot",
        cascade="all, delete-orphan",
        order_by="TimeSlot.slot",
        lazy="selectin",
    )


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    availability_id = Column(
        UUID(as_uuid=True), ForeignKey("availabilities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot = Column(String, nullable=False)  # "HH:MM - HH:MM", 24-hour
    status = Column(
        SQLEnum(SlotStatus, name="slot_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SlotStatus.AVAILABLE,
        index=True,
    )
    # Set only while locked for a hybrid payment; the lock sweep keys on these.
    payment_reference_id = Column(String, nullable=True, index=True)
    locked_at = Column(DateTime, nullable=True)

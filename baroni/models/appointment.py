"""Appointment model and its status enums."""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime
from baroni.core.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"  # hybrid: external part not confirmed yet
    PENDING = "pending"  # funds held in the star's escrow
    COMPLETED = "completed"  # escrow released to the star's jackpot
    REFUNDED = "refunded"


class RescheduleReason(str, enum.Enum):
    FAN_REQUEST = "fan_request"  # a new appointment was booked in its place
    NO_SHOW = "no_show"  # set by the scheduler, nothing was rebooked


# Statuses that hold a slot and block availability edits
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS)


def _enum(enum_cls, name):
    return SQLEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    star_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    fan_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    availability_id = Column(UUID(as_uuid=True), ForeignKey("availabilities.id", ondelete="SET NULL"), nullable=True, index=True)
    time_slot_id = Column(UUID(as_uuid=True), ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True)

    date = Column(String, nullable=False)
    time = Column(String, nullable=False)
    utc_start_time = Column(DateTime, nullable=True, index=True)

    price = Column(Integer, nullable=False)
    status = Column(_enum(AppointmentStatus, "appointment_status"), nullable=False, default=AppointmentStatus.PENDING, index=True)
    payment_status = Column(_enum(PaymentStatus, "appointment_payment_status"), nullable=False, default=PaymentStatus.PENDING, index=True)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True, index=True)
    external_payment_id = Column(String, nullable=True, index=True)
    coin_amount_reserved = Column(Integer, nullable=False, default=0)

    call_duration = Column(Integer, nullable=False, default=0)  # seconds
    completed_at = Column(DateTime, nullable=True)

    is_rescheduled = Column(Boolean, nullable=False, default=False)
    parent_appointment_id = Column(UUID(as_uuid=True), ForeignKey("appointments.id"), nullable=True)
    reschedule_reason = Column(_enum(RescheduleReason, "reschedule_reason"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

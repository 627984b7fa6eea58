"""Pydantic schemas for appointments."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from typing import Optional, Union
from baroni.models.appointment import Appointment, AppointmentStatus, PaymentStatus, RescheduleReason
from baroni.services.appointment_listing import to_public_status


class AppointmentCreate(BaseModel):
    """Schema for booking a star's slot."""
    star_id: UUID
    availability_id: UUID
    time_slot_id: UUID
    price: int = Field(..., gt=0)
    contact: Optional[str] = None  # falls back to the fan's profile contact


class AppointmentReschedule(BaseModel):
    availability_id: UUID
    time_slot_id: UUID


class CallDurationIn(BaseModel):
    duration: Union[int, float]  # seconds


class AppointmentOut(BaseModel):
    """Appointment as clients see it; `in_progress` is reported as `approved`."""
    id: UUID
    star_id: UUID
    fan_id: UUID
    availability_id: Optional[UUID] = None
    time_slot_id: Optional[UUID] = None
    date: str
    time: str
    utc_start_time: Optional[datetime] = None
    price: int
    status: AppointmentStatus
    payment_status: PaymentStatus
    transaction_id: Optional[UUID] = None
    call_duration: int
    completed_at: Optional[datetime] = None
    is_rescheduled: bool
    parent_appointment_id: Optional[UUID] = None
    reschedule_reason: Optional[RescheduleReason] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentOut":
        out = cls.model_validate(appointment)
        out.status = to_public_status(appointment.status)
        return out


class AppointmentCreated(BaseModel):
    appointment: AppointmentOut
    payment_mode: str
    coin_amount: int
    external_amount: int = 0
    external_payment_id: Optional[str] = None
    external_payment_message: Optional[str] = None


class CallDurationOut(BaseModel):
    appointment: AppointmentOut
    call_duration: int
    fully_completed: bool


class AppointmentPage(BaseModel):
    items: list[AppointmentOut]
    total: int
    page: int
    limit: int
    total_pages: int

"""Appointment booking endpoints."""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.clock import Clock
from baroni.core.database import get_db
from baroni.core.deps import get_clock, get_current_user, require_role
from baroni.models.user import User, UserRole
from baroni.schemas.appointment import (
    AppointmentCreate,
    AppointmentCreated,
    AppointmentOut,
    AppointmentPage,
    AppointmentReschedule,
    CallDurationIn,
    CallDurationOut,
)
from baroni.services import appointment_service
from baroni.services.payments import HybridPayment

router = APIRouter()
logger = logging.getLogger(__name__)

fan_or_admin = require_role(UserRole.FAN, UserRole.ADMIN)
star_or_admin = require_role(UserRole.STAR, UserRole.ADMIN)


@router.post("", response_model=AppointmentCreated, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    current_user: User = Depends(fan_or_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Book a slot. Hybrid payments return the gateway reference to confirm on the phone."""
    appointment, payment = await appointment_service.create_appointment(
        db,
        current_user,
        star_id=payload.star_id,
        availability_id=payload.availability_id,
        time_slot_id=payload.time_slot_id,
        price=payload.price,
        contact=payload.contact,
        clock=clock,
    )
    return AppointmentCreated(
        appointment=AppointmentOut.from_model(appointment),
        payment_mode=payment.payment_mode,
        coin_amount=payment.coin_amount,
        external_amount=payment.external_amount if isinstance(payment, HybridPayment) else 0,
        external_payment_id=payment.external_payment_id,
        external_payment_message=payment.external_payment_message,
    )


@router.get("", response_model=AppointmentPage)
async def list_appointments(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Appointments visible to the caller: pending first, then upcoming, then past."""
    result = await appointment_service.list_appointments(db, current_user, page=page, limit=limit)
    return AppointmentPage(
        items=[AppointmentOut.from_model(a) for a in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(
    appointment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.get_appointment(db, current_user, appointment_id)
    return AppointmentOut.from_model(appointment)


@router.post("/{appointment_id}/approve", response_model=AppointmentOut)
async def approve_appointment(
    appointment_id: UUID,
    current_user: User = Depends(star_or_admin),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.approve_appointment(db, current_user, appointment_id)
    return AppointmentOut.from_model(appointment)


@router.post("/{appointment_id}/reject", response_model=AppointmentOut)
async def reject_appointment(
    appointment_id: UUID,
    current_user: User = Depends(star_or_admin),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.reject_appointment(db, current_user, appointment_id)
    return AppointmentOut.from_model(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_appointment(
    appointment_id: UUID,
    current_user: User = Depends(fan_or_admin),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.cancel_appointment(db, current_user, appointment_id)
    return AppointmentOut.from_model(appointment)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
async def reschedule_appointment(
    appointment_id: UUID,
    payload: AppointmentReschedule,
    current_user: User = Depends(fan_or_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Move the booking; returns the new appointment."""
    appointment = await appointment_service.reschedule_appointment(
        db,
        current_user,
        appointment_id,
        availability_id=payload.availability_id,
        time_slot_id=payload.time_slot_id,
        clock=clock,
    )
    return AppointmentOut.from_model(appointment)


@router.post("/{appointment_id}/call-duration", response_model=CallDurationOut)
async def add_call_duration(
    appointment_id: UUID,
    payload: CallDurationIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record seconds of call time from one participant."""
    appointment, fully_completed = await appointment_service.add_call_duration(
        db, current_user, appointment_id, payload.duration
    )
    return CallDurationOut(
        appointment=AppointmentOut.from_model(appointment),
        call_duration=appointment.call_duration,
        fully_completed=fully_completed,
    )

"""Appointment lifecycle.

    pending --approve--> approved --first call time--> in_progress --scheduler--> completed
    pending --reject--> rejected
    any --cancel--> cancelled
    any --reschedule--> rescheduled (+ new pending appointment)
    approved|in_progress --scheduler, nobody joined--> rescheduled (no show)

Status changes are conditional UPDATEs on the status the caller read, so a
concurrent transition makes the second writer fail instead of clobbering
the first. Refunds and slot releases that follow a committed transition
are best effort: they are logged and never undo the transition.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.clock import Clock, system_clock
from baroni.core.config import settings
from baroni.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PaymentFailedError,
    SlotConflictError,
    ValidationFailedError,
)
from baroni.models.appointment import Appointment, AppointmentStatus, PaymentStatus, RescheduleReason
from baroni.models.availability import Availability, TimeSlot
from baroni.models.transaction import TransactionStatus
from baroni.models.user import User, UserRole
from baroni.services import slot_reservation
from baroni.services.appointment_listing import InMemoryListingStrategy, Page, default_listing_strategy
from baroni.services.notification_service import notify_quietly
from baroni.services.payments import CoinPayment, PaymentError, PaymentResult, payment_service
from baroni.utils.contact import normalize_contact
from baroni.utils.timezone import convert_local_to_utc, local_now, parse_ymd, slot_start_minutes

logger = logging.getLogger(__name__)

# Statuses during which the appointment owns its slot
SLOT_HOLDING_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS)
CALL_STATUSES = (AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED)


async def _load(db: AsyncSession, appointment_id: UUID) -> Optional[Appointment]:
    result = await db.execute(
        select(Appointment).where(Appointment.id == appointment_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_for(db: AsyncSession, actor: User, appointment_id: UUID, *, as_star: bool = False, as_fan: bool = False) -> Appointment:
    appointment = await _load(db, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    if actor.is_admin:
        return appointment
    if as_star and appointment.star_id == actor.id:
        return appointment
    if as_fan and appointment.fan_id == actor.id:
        return appointment
    raise ForbiddenError("You are not allowed to act on this appointment")


async def _transition(db: AsyncSession, appointment_id: UUID, expected, **values) -> bool:
    """Compare-and-set on status; True if this caller won."""
    expected = expected if isinstance(expected, (tuple, list)) else (expected,)
    result = await db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.status.in_(expected))
        .values(updated_at=datetime.utcnow(), **values)
    )
    return result.rowcount == 1


async def lineage_ids(db: AsyncSession, appointment: Appointment, max_depth: int = 20) -> list[UUID]:
    """Ids of the appointments this one was rescheduled from, nearest first."""
    ids = []
    parent_id = appointment.parent_appointment_id
    while parent_id is not None and len(ids) < max_depth:
        ids.append(parent_id)
        result = await db.execute(select(Appointment.parent_appointment_id).where(Appointment.id == parent_id))
        parent_id = result.scalar_one_or_none()
    return ids


async def _best_effort(db: AsyncSession, label: str, appointment_id: UUID, coro) -> bool:
    try:
        await coro
        await db.commit()
        return True
    except Exception:
        await db.rollback()
        logger.exception("%s failed for appointment %s", label, appointment_id)
        return False


async def _bookable_slot(
    db: AsyncSession, star: User, availability_id: UUID, time_slot_id: UUID, clock: Clock
) -> tuple[Availability, TimeSlot]:
    """Validate that a slot of `star` can be booked right now."""
    result = await db.execute(
        select(Availability).where(Availability.id == availability_id, Availability.user_id == star.id)
    )
    availability = result.scalar_one_or_none()
    if availability is None:
        raise NotFoundError("Availability not found for this star")

    slot = await slot_reservation.get_slot(db, time_slot_id)
    if slot is None or slot.availability_id != availability.id:
        raise NotFoundError("Time slot not found")

    now_local = local_now(clock.now(), star.country)
    try:
        day = parse_ymd(availability.date)
    except ValueError:
        raise ValidationFailedError("Availability has an invalid date")
    if day < now_local.date():
        raise ValidationFailedError("Cannot book appointments for past dates")
    if day == now_local.date():
        start = slot_start_minutes(slot.slot)
        if start is not None and start <= now_local.hour * 60 + now_local.minute:
            raise ValidationFailedError("Cannot book a time slot that has already started")

    slot_reservation.ensure_bookable(slot)
    return availability, slot


async def get_star(db: AsyncSession, star_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == star_id, User.role == UserRole.STAR.value))
    star = result.scalar_one_or_none()
    if star is None:
        raise NotFoundError("Star not found")
    return star


async def create_appointment(
    db: AsyncSession,
    fan: User,
    *,
    star_id: UUID,
    availability_id: UUID,
    time_slot_id: UUID,
    price: int,
    contact: Optional[str] = None,
    clock: Clock = system_clock,
) -> tuple[Appointment, PaymentResult]:
    """Book a slot: charge the fan, claim the slot and store a pending appointment.

    Payment, slot claim and the appointment row commit together. Losing the
    slot race after a successful charge rolls the charge back as well.
    """
    if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
        raise ValidationFailedError("Price must be a positive integer")

    star = await get_star(db, star_id)
    availability, slot = await _bookable_slot(db, star, availability_id, time_slot_id, clock)
    slot_id, slot_label, day = slot.id, slot.slot, availability.date

    phone = normalize_contact(contact) or normalize_contact(fan.contact)
    if not phone:
        raise ValidationFailedError("User phone number is required")

    appointment_id = uuid.uuid4()
    fan_id, star_name, star_country = fan.id, star.full_name, star.country
    try:
        payment = await payment_service.create_hybrid_transaction(
            db,
            payer_id=fan_id,
            receiver_id=star_id,
            amount=price,
            payer_phone=phone,
            star_name=star_name,
            appointment_id=appointment_id,
            metadata={"availability_id": str(availability_id), "time_slot_id": str(time_slot_id)},
        )
    except PaymentError as e:
        await db.rollback()
        logger.warning("Payment failed for fan %s booking slot %s: %s", fan_id, slot_id, e)
        raise PaymentFailedError(f"Transaction failed: {e}")
    except Exception:
        await db.rollback()
        raise

    coin_only = isinstance(payment, CoinPayment)
    try:
        if coin_only:
            claimed = await slot_reservation.reserve_slot(db, slot_id)
        else:
            claimed = await slot_reservation.lock_slot(db, slot_id, payment.external_payment_id, clock.now())
        if not claimed:
            raise SlotConflictError("Time slot is no longer available")

        appointment = Appointment(
            id=appointment_id,
            star_id=star_id,
            fan_id=fan_id,
            availability_id=availability_id,
            time_slot_id=slot_id,
            date=day,
            time=slot_label,
            utc_start_time=convert_local_to_utc(day, slot_label, star_country),
            price=price,
            status=AppointmentStatus.PENDING,
            payment_status=PaymentStatus.PENDING if coin_only else PaymentStatus.INITIATED,
            transaction_id=payment.transaction_id,
            external_payment_id=payment.external_payment_id,
            coin_amount_reserved=payment.coin_amount,
        )
        db.add(appointment)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(appointment)
    logger.info(
        "Appointment %s created: fan %s -> star %s on %s %s (%s)",
        appointment.id, fan_id, star_id, day, slot_label, payment.payment_mode,
    )
    await notify_quietly(db, "APPOINTMENT_CREATED", appointment)
    return appointment, payment


async def approve_appointment(db: AsyncSession, actor: User, appointment_id: UUID) -> Appointment:
    actor_id = actor.id
    appointment = await _load_for(db, actor, appointment_id, as_star=True)
    if appointment.status != AppointmentStatus.PENDING:
        raise InvalidStateError("Only pending appointments can be approved")
    if appointment.payment_status == PaymentStatus.INITIATED:
        raise InvalidStateError("Payment for this appointment is not completed yet")

    slot_id = appointment.time_slot_id
    try:
        if not await _transition(db, appointment_id, AppointmentStatus.PENDING, status=AppointmentStatus.APPROVED):
            raise InvalidStateError("Only pending appointments can be approved")
        if slot_id is not None:
            await slot_reservation.mark_unavailable(db, slot_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    appointment = await _load(db, appointment_id)
    logger.info("Appointment %s approved by %s", appointment_id, actor_id)
    await notify_quietly(db, "APPOINTMENT_ACCEPTED", appointment)
    return appointment


async def reject_appointment(db: AsyncSession, actor: User, appointment_id: UUID) -> Appointment:
    actor_id = actor.id
    appointment = await _load_for(db, actor, appointment_id, as_star=True)
    if appointment.status != AppointmentStatus.PENDING:
        raise InvalidStateError("Only pending appointments can be rejected")
    if appointment.payment_status == PaymentStatus.INITIATED:
        raise InvalidStateError("Cannot reject an appointment whose payment is not completed yet")

    star_id, slot_id, transaction_id = appointment.star_id, appointment.time_slot_id, appointment.transaction_id
    lineage = await lineage_ids(db, appointment)
    escrow_held, refundable = await _refund_plan(db, appointment, lineage)

    values = {"status": AppointmentStatus.REJECTED}
    if escrow_held or refundable:
        values["payment_status"] = PaymentStatus.REFUNDED
    if not await _transition(db, appointment_id, AppointmentStatus.PENDING, **values):
        await db.rollback()
        raise InvalidStateError("Only pending appointments can be rejected")
    await db.commit()

    await _refund(db, appointment_id, star_id, transaction_id, lineage, escrow_held, refundable)
    await _best_effort(db, "Slot release", appointment_id, slot_reservation.release_slot(db, slot_id))

    appointment = await _load(db, appointment_id)
    logger.info("Appointment %s rejected by %s", appointment_id, actor_id)
    await notify_quietly(db, "APPOINTMENT_REJECTED", appointment)
    return appointment


async def _refund_plan(db: AsyncSession, appointment: Appointment, lineage: list[UUID]) -> tuple[bool, bool]:
    """(escrow still held, transaction owes the fan) read from the ledger.

    A rescheduled booking carries `payment_status=completed` while its
    deposit still sits in escrow under the original appointment, so the
    appointment's own payment status cannot answer this.
    """
    if appointment.status == AppointmentStatus.RESCHEDULED and appointment.reschedule_reason == RescheduleReason.FAN_REQUEST:
        # the money moved to the replacement booking
        return False, False
    if await payment_service.escrow_held(db, appointment.star_id, appointment.id, lineage):
        return True, appointment.transaction_id is not None
    if appointment.transaction_id is None:
        return False, False
    try:
        transaction = await payment_service.get_transaction(db, appointment.transaction_id)
    except PaymentError:
        logger.warning("Appointment %s references missing transaction %s", appointment.id, appointment.transaction_id)
        return False, False
    # external leg still outstanding: only the coin part was taken
    return False, transaction.status == TransactionStatus.INITIATED.value


async def _refund(
    db: AsyncSession,
    appointment_id: UUID,
    star_id: UUID,
    transaction_id: Optional[UUID],
    lineage: list[UUID],
    escrow_held: bool,
    refundable: bool,
) -> None:
    if escrow_held:
        await _best_effort(db, "Escrow refund", appointment_id,
                           payment_service.refund_escrow(db, star_id, appointment_id, lineage))
    if refundable and transaction_id is not None:
        await _best_effort(db, "Transaction refund", appointment_id, _settle_refund(db, transaction_id))


async def _settle_refund(db: AsyncSession, transaction_id: UUID) -> None:
    """Return the fan's money by whatever route the transaction's status allows."""
    transaction = await payment_service.get_transaction(db, transaction_id)
    if transaction.status == TransactionStatus.PENDING.value:
        await payment_service.cancel_transaction(db, transaction_id)
    elif transaction.status == TransactionStatus.INITIATED.value:
        await payment_service.fail_transaction(db, transaction_id)
    elif transaction.status == TransactionStatus.COMPLETED.value:
        await payment_service.refund_transaction(db, transaction_id)
    else:
        logger.info("Transaction %s already %s; nothing to refund", transaction_id, transaction.status)


async def cancel_appointment(db: AsyncSession, actor: User, appointment_id: UUID) -> Appointment:
    actor_id = actor.id
    appointment = await _load_for(db, actor, appointment_id, as_fan=True)
    if appointment.status == AppointmentStatus.CANCELLED:
        raise InvalidStateError("Appointment is already cancelled")

    previous = appointment.status
    star_id, slot_id, transaction_id = appointment.star_id, appointment.time_slot_id, appointment.transaction_id
    lineage = await lineage_ids(db, appointment)
    escrow_held, refundable = await _refund_plan(db, appointment, lineage)

    values = {"status": AppointmentStatus.CANCELLED}
    if escrow_held or refundable:
        values["payment_status"] = PaymentStatus.REFUNDED
    if not await _transition(db, appointment_id, previous, **values):
        await db.rollback()
        raise InvalidStateError("Appointment changed while cancelling; please retry")
    await db.commit()

    await _refund(db, appointment_id, star_id, transaction_id, lineage, escrow_held, refundable)
    if previous in SLOT_HOLDING_STATUSES:
        await _best_effort(db, "Slot release", appointment_id, slot_reservation.release_slot(db, slot_id))

    appointment = await _load(db, appointment_id)
    logger.info("Appointment %s cancelled by %s (was %s)", appointment_id, actor_id, previous.value)
    await notify_quietly(db, "APPOINTMENT_CANCELLED", appointment)
    return appointment


async def reschedule_appointment(
    db: AsyncSession,
    actor: User,
    appointment_id: UUID,
    *,
    availability_id: UUID,
    time_slot_id: UUID,
    clock: Clock = system_clock,
) -> Appointment:
    """Move a booking to another slot of the same star.

    The old appointment is closed as rescheduled and a new pending one
    inherits its price and payment. Both rows and both slot changes commit
    together or not at all.

    Refused while the external payment is outstanding, and for a booking
    that was already replaced by an earlier reschedule.
    """
    old = await _load_for(db, actor, appointment_id, as_fan=True)
    if old.payment_status == PaymentStatus.INITIATED:
        raise InvalidStateError("Cannot reschedule before the payment for this appointment is completed")
    if old.status == AppointmentStatus.RESCHEDULED and old.reschedule_reason == RescheduleReason.FAN_REQUEST:
        raise InvalidStateError("Appointment was already rescheduled; reschedule the new booking instead")
    star = await get_star(db, old.star_id)
    availability, slot = await _bookable_slot(db, star, availability_id, time_slot_id, clock)

    previous = old.status
    old_slot_id = old.time_slot_id
    new_slot_id, day, label = slot.id, availability.date, slot.slot
    new_appointment = Appointment(
        id=uuid.uuid4(),
        star_id=old.star_id,
        fan_id=old.fan_id,
        availability_id=availability.id,
        time_slot_id=new_slot_id,
        date=day,
        time=label,
        utc_start_time=convert_local_to_utc(day, label, star.country),
        price=old.price,
        status=AppointmentStatus.PENDING,
        payment_status=PaymentStatus.COMPLETED,
        transaction_id=old.transaction_id,
        external_payment_id=old.external_payment_id,
        coin_amount_reserved=old.coin_amount_reserved,
        is_rescheduled=True,
        parent_appointment_id=old.id,
    )

    try:
        if not await _transition(
            db, appointment_id, previous,
            status=AppointmentStatus.RESCHEDULED, reschedule_reason=RescheduleReason.FAN_REQUEST,
        ):
            raise InvalidStateError("Appointment changed while rescheduling; please retry")
        db.add(new_appointment)
        await db.flush()
        if previous in SLOT_HOLDING_STATUSES and old_slot_id is not None:
            await slot_reservation.release_slot(db, old_slot_id)
        if not await slot_reservation.reserve_slot(db, new_slot_id):
            raise SlotConflictError("Time slot is no longer available")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    new_appointment = await _load(db, new_appointment.id)
    logger.info("Appointment %s rescheduled to %s (%s %s)", appointment_id, new_appointment.id, day, label)
    await notify_quietly(db, "APPOINTMENT_RESCHEDULED", new_appointment)
    return new_appointment


async def add_call_duration(
    db: AsyncSession, actor: User, appointment_id: UUID, duration_seconds: Union[int, float]
) -> tuple[Appointment, bool]:
    """Add seconds of call time reported by one leg of the call.

    Returns the appointment and whether the total now reaches the
    completion threshold. The scheduler does the actual completion.
    """
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)) or duration_seconds < 0:
        raise ValidationFailedError("Duration must be a non-negative number of seconds")
    seconds = int(round(duration_seconds))

    appointment = await _load_for(db, actor, appointment_id, as_star=True, as_fan=True)
    if appointment.status not in CALL_STATUSES:
        raise InvalidStateError("Only approved appointments can record call time")

    try:
        result = await db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status.in_(CALL_STATUSES))
            .values(call_duration=Appointment.call_duration + seconds, updated_at=datetime.utcnow())
        )
        if result.rowcount != 1:
            raise InvalidStateError("Only approved appointments can record call time")
        if seconds > 0:
            await _transition(db, appointment_id, AppointmentStatus.APPROVED, status=AppointmentStatus.IN_PROGRESS)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    appointment = await _load(db, appointment_id)
    fully_completed = appointment.call_duration >= settings.COMPLETE_DURATION_SECONDS
    logger.info(
        "Appointment %s call time +%ds = %ds (complete threshold reached: %s)",
        appointment_id, seconds, appointment.call_duration, fully_completed,
    )
    return appointment, fully_completed


async def get_appointment(db: AsyncSession, actor: User, appointment_id: UUID) -> Appointment:
    appointment = await _load_for(db, actor, appointment_id, as_star=True, as_fan=True)
    if (
        not actor.is_admin
        and appointment.star_id == actor.id
        and appointment.fan_id != actor.id
        and appointment.payment_status == PaymentStatus.INITIATED
    ):
        raise ForbiddenError("Payment for this appointment is not completed yet")
    return appointment


def visible_appointments_query(actor: User):
    query = select(Appointment)
    if actor.is_admin:
        return query
    if actor.role == UserRole.STAR.value:
        return query.where(Appointment.star_id == actor.id, Appointment.payment_status != PaymentStatus.INITIATED)
    return query.where(Appointment.fan_id == actor.id)


async def list_appointments(
    db: AsyncSession,
    actor: User,
    page: int = 1,
    limit: Optional[int] = None,
    strategy: InMemoryListingStrategy = default_listing_strategy,
) -> Page:
    limit = limit or settings.DEFAULT_PAGE_SIZE
    if page < 1 or limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationFailedError(f"page must be >= 1 and limit between 1 and {settings.MAX_PAGE_SIZE}")
    return await strategy.fetch_page(db, visible_appointments_query(actor), page, limit)

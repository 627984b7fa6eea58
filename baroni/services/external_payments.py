"""Outcome handling for the external (mobile money) leg of hybrid payments.

A hybrid booking locks its slot and waits. The gateway callback either
settles it (funds go to escrow, slot becomes booked) or fails it (coins go
back, appointment is cancelled, slot is freed). Locks whose callback never
arrives are failed by `release_expired_locks`.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.errors import NotFoundError
from baroni.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus, PaymentStatus
from baroni.models.availability import TimeSlot, SlotStatus
from baroni.models.transaction import Transaction, TransactionStatus
from baroni.services import slot_reservation
from baroni.services.payments import PaymentError, payment_service

logger = logging.getLogger(__name__)

PROCESSABLE = (TransactionStatus.INITIATED.value, TransactionStatus.PENDING.value)


async def _linked_appointments(db: AsyncSession, transaction_id: UUID) -> list[Appointment]:
    result = await db.execute(
        select(Appointment)
        .where(Appointment.transaction_id == transaction_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _settle(db: AsyncSession, transaction: Transaction) -> int:
    await payment_service.complete_transaction(db, transaction.id)
    appointments = await _linked_appointments(db, transaction.id)
    settled = 0
    for appointment in appointments:
        # a booking cancelled or rescheduled meanwhile no longer owns its slot
        if appointment.status not in ACTIVE_STATUSES or appointment.payment_status != PaymentStatus.INITIATED:
            continue
        await payment_service.hold_in_escrow(db, transaction, appointment.id)
        appointment.payment_status = PaymentStatus.PENDING
        if appointment.time_slot_id is not None:
            await slot_reservation.confirm_locked_slot(db, appointment.time_slot_id, transaction.external_payment_id)
        settled += 1
    if appointments and not settled:
        # nothing left to pay for
        await payment_service.refund_transaction(db, transaction.id)
        logger.warning("Payment %s arrived after its booking ended; refunded", transaction.external_payment_id)
    return settled


async def _fail(db: AsyncSession, transaction: Transaction) -> int:
    if transaction.status == TransactionStatus.INITIATED.value:
        await payment_service.fail_transaction(db, transaction.id)
    cancelled = 0
    for appointment in await _linked_appointments(db, transaction.id):
        if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.APPROVED):
            continue
        appointment.status = AppointmentStatus.CANCELLED
        appointment.payment_status = PaymentStatus.REFUNDED
        await slot_reservation.release_slot(db, appointment.time_slot_id)
        cancelled += 1
    return cancelled


async def confirm_external_payment(db: AsyncSession, external_payment_id: str, succeeded: bool) -> dict:
    """Apply a gateway callback. Replays of an already-settled payment are no-ops."""
    try:
        transaction = await payment_service.get_by_external_id(db, external_payment_id)
    except PaymentError:
        raise NotFoundError("Transaction not found")

    if transaction.status not in PROCESSABLE:
        logger.info("Ignoring callback for %s: transaction already %s", external_payment_id, transaction.status)
        return {"processed": False, "status": transaction.status, "appointments": 0}

    try:
        affected = await _settle(db, transaction) if succeeded else await _fail(db, transaction)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(transaction)
    logger.info(
        "External payment %s %s; %d appointment(s) updated",
        external_payment_id, "settled" if succeeded else "failed", affected,
    )
    return {"processed": True, "status": transaction.status, "appointments": affected}


async def release_expired_locks(db: AsyncSession, now: datetime, timeout_minutes: int) -> dict:
    """Sweep hybrid locks: book the paid ones, fail the ones past the timeout."""
    result = await db.execute(
        select(TimeSlot.id, TimeSlot.payment_reference_id, TimeSlot.locked_at).where(
            TimeSlot.status == SlotStatus.LOCKED, TimeSlot.payment_reference_id.isnot(None)
        )
    )
    locks = result.all()
    cutoff = now - timedelta(minutes=timeout_minutes)
    booked = unlocked = errors = 0

    for slot_id, reference, locked_at in locks:
        try:
            tx_result = await db.execute(select(Transaction).where(Transaction.external_payment_id == reference))
            transaction: Optional[Transaction] = tx_result.scalar_one_or_none()

            if transaction is not None and transaction.status == TransactionStatus.COMPLETED.value:
                if await slot_reservation.confirm_locked_slot(db, slot_id, reference):
                    booked += 1
            elif locked_at is not None and locked_at < cutoff:
                if transaction is not None and transaction.status in PROCESSABLE:
                    await _fail(db, transaction)
                await db.execute(
                    update(TimeSlot)
                    .where(TimeSlot.id == slot_id, TimeSlot.status == SlotStatus.LOCKED)
                    .values(status=SlotStatus.AVAILABLE, payment_reference_id=None, locked_at=None)
                )
                unlocked += 1
                logger.info("Slot %s unlocked after %d min without payment %s", slot_id, timeout_minutes, reference)
            await db.commit()
        except Exception:
            await db.rollback()
            errors += 1
            logger.exception("Error processing locked slot %s", slot_id)

    if locks:
        logger.info("Lock sweep: %d booked, %d unlocked, %d errors", booked, unlocked, errors)
    return {"booked": booked, "unlocked": unlocked, "errors": errors}

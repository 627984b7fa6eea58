"""Star wallet: escrow holds and their release or refund.

Every function validates before it writes, so a raised error leaves the
session untouched. Callers own the commit.
"""

import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.models.star_wallet import StarWallet, StarTransaction, EscrowMovement

logger = logging.getLogger(__name__)


class EscrowError(Exception):
    """Escrow bookkeeping could not be applied."""


async def get_or_create_wallet(db: AsyncSession, star_id: UUID) -> StarWallet:
    result = await db.execute(select(StarWallet).where(StarWallet.star_id == star_id))
    wallet = result.scalar_one_or_none()
    if wallet is None:
        wallet = StarWallet(star_id=star_id, escrow=0, jackpot=0, total_earned=0)
        db.add(wallet)
        await db.flush()
    return wallet


async def add_to_escrow(
    db: AsyncSession,
    star_id: UUID,
    amount: int,
    appointment_id: Optional[UUID] = None,
    transaction_id: Optional[UUID] = None,
) -> StarTransaction:
    """Hold funds for a booked call until it completes."""
    if amount <= 0:
        raise EscrowError("Escrow amount must be greater than 0")

    wallet = await get_or_create_wallet(db, star_id)
    wallet.escrow += amount
    wallet.total_earned += amount

    record = StarTransaction(
        star_id=star_id,
        appointment_id=appointment_id,
        transaction_id=transaction_id,
        amount=amount,
        escrow_movement=EscrowMovement.DEPOSIT.value,
        status="pending",
    )
    db.add(record)
    await db.flush()
    logger.info("Escrow +%d for star %s (appointment %s)", amount, star_id, appointment_id)
    return record


async def _pending_deposit(db: AsyncSession, star_id: UUID, appointment_ids: Iterable[UUID]) -> StarTransaction:
    ids = [i for i in appointment_ids if i is not None]
    result = await db.execute(
        select(StarTransaction)
        .where(
            StarTransaction.star_id == star_id,
            StarTransaction.appointment_id.in_(ids),
            StarTransaction.status == "pending",
            StarTransaction.escrow_movement == EscrowMovement.DEPOSIT.value,
        )
        .order_by(StarTransaction.created_at.desc())
    )
    record = result.scalars().first()
    if record is None:
        raise EscrowError(f"No pending escrow deposit for appointment {ids[0] if ids else None}")
    return record


async def has_pending_deposit(db: AsyncSession, star_id: UUID, appointment_ids: Iterable[UUID]) -> bool:
    try:
        await _pending_deposit(db, star_id, appointment_ids)
    except EscrowError:
        return False
    return True


async def move_escrow_to_jackpot(
    db: AsyncSession,
    star_id: UUID,
    appointment_id: UUID,
    lineage: Iterable[UUID] = (),
) -> int:
    """Release a held deposit to the star's spendable jackpot. Returns the amount.

    `lineage` lists earlier appointments the booking was rescheduled from;
    their deposit follows the booking.
    """
    record = await _pending_deposit(db, star_id, [appointment_id, *lineage])
    wallet = await get_or_create_wallet(db, star_id)
    if wallet.escrow < record.amount:
        raise EscrowError("Insufficient escrow balance")

    wallet.escrow -= record.amount
    wallet.jackpot += record.amount
    record.status = "completed"
    record.escrow_movement = EscrowMovement.RELEASE.value
    await db.flush()
    logger.info("Escrow -> jackpot %d for star %s (appointment %s)", record.amount, star_id, appointment_id)
    return record.amount


async def refund_escrow(
    db: AsyncSession,
    star_id: UUID,
    appointment_id: UUID,
    lineage: Iterable[UUID] = (),
) -> int:
    """Give back a held deposit (reject/cancel). Returns the amount."""
    record = await _pending_deposit(db, star_id, [appointment_id, *lineage])
    wallet = await get_or_create_wallet(db, star_id)
    if wallet.escrow < record.amount:
        raise EscrowError("Insufficient escrow balance")

    wallet.escrow -= record.amount
    wallet.total_earned = max(0, wallet.total_earned - record.amount)
    record.status = "refunded"
    record.escrow_movement = EscrowMovement.REFUND.value
    await db.flush()
    logger.info("Escrow refunded %d for star %s (appointment %s)", record.amount, star_id, appointment_id)
    return record.amount

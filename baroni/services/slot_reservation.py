"""Atomic slot state changes.

Every transition is a single conditional UPDATE: the WHERE clause names
the status the caller expects, and a rowcount of zero means another
request got there first. Nothing here commits.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.errors import SlotConflictError
from baroni.models.availability import TimeSlot, SlotStatus

logger = logging.getLogger(__name__)


def ensure_bookable(slot: TimeSlot) -> None:
    """Fail fast with a precise message before any payment is attempted."""
    if slot.status == SlotStatus.LOCKED:
        raise SlotConflictError("Time slot is temporarily locked for another payment; please wait for the lock timeout")
    if slot.status != SlotStatus.AVAILABLE:
        raise SlotConflictError("Time slot is no longer available")


async def get_slot(db: AsyncSession, slot_id: UUID) -> Optional[TimeSlot]:
    result = await db.execute(
        select(TimeSlot).where(TimeSlot.id == slot_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _transition(db: AsyncSession, slot_id: UUID, expected: tuple, **values) -> bool:
    result = await db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id, TimeSlot.status.in_(expected))
        .values(**values)
    )
    return result.rowcount == 1


async def reserve_slot(db: AsyncSession, slot_id: UUID) -> bool:
    """available -> unavailable. False if the slot was taken meanwhile."""
    ok = await _transition(
        db, slot_id, (SlotStatus.AVAILABLE,),
        status=SlotStatus.UNAVAILABLE, payment_reference_id=None, locked_at=None,
    )
    if not ok:
        logger.info("Reserve lost race for slot %s", slot_id)
    return ok


async def lock_slot(db: AsyncSession, slot_id: UUID, payment_reference_id: str, now: datetime) -> bool:
    """available -> locked while an external payment is outstanding."""
    ok = await _transition(
        db, slot_id, (SlotStatus.AVAILABLE,),
        status=SlotStatus.LOCKED, payment_reference_id=payment_reference_id, locked_at=now,
    )
    if not ok:
        logger.info("Lock lost race for slot %s", slot_id)
    return ok


async def confirm_locked_slot(db: AsyncSession, slot_id: UUID, payment_reference_id: str) -> bool:
    """locked -> unavailable once the external payment is confirmed.

    Only the lock stamped with this payment is taken over; a lock held for
    somebody else's payment is left for its own callback or timeout. A slot
    that went back to the calendar meanwhile is claimed if still free.
    """
    result = await db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            or_(
                and_(TimeSlot.status == SlotStatus.LOCKED, TimeSlot.payment_reference_id == payment_reference_id),
                TimeSlot.status == SlotStatus.AVAILABLE,
            ),
        )
        .values(status=SlotStatus.UNAVAILABLE, payment_reference_id=None, locked_at=None)
    )
    if result.rowcount != 1:
        logger.warning("Slot %s is not held for payment %s; leaving it as is", slot_id, payment_reference_id)
        return False
    return True


async def mark_unavailable(db: AsyncSession, slot_id: UUID) -> bool:
    """Force a slot to unavailable regardless of its current status (approval)."""
    return await _transition(
        db, slot_id, tuple(SlotStatus),
        status=SlotStatus.UNAVAILABLE, payment_reference_id=None, locked_at=None,
    )


async def release_slot(db: AsyncSession, slot_id: Optional[UUID]) -> bool:
    """Give a slot back to the calendar."""
    if slot_id is None:
        return False
    return await _transition(
        db, slot_id, (SlotStatus.UNAVAILABLE, SlotStatus.LOCKED),
        status=SlotStatus.AVAILABLE, payment_reference_id=None, locked_at=None,
    )

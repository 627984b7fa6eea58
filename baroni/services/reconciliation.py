"""Periodic reconciliation of approved appointments.

Each tick looks at approved and in-progress calls whose payment is held
or settled and decides, from the recorded call time and the time since
the slot started:

* enough call time, or the window has passed with some call time:
  complete the appointment and release the star's escrow;
* the window has passed with no call time at all: mark it a no-show.

A tick claims each appointment with a conditional status update before
any money moves, so overlapping ticks (or two processes) cannot complete
the same appointment twice.
"""

import asyncio
import enum
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from baroni.core.clock import Clock, system_clock
from baroni.core.config import settings
from baroni.core.database import async_session
from baroni.models.appointment import Appointment, AppointmentStatus, PaymentStatus, RescheduleReason
from baroni.services.appointment_listing import start_instant
from baroni.services.appointment_service import lineage_ids
from baroni.services.external_payments import release_expired_locks
from baroni.services.messaging_cleanup import delete_conversation_between
from baroni.services.notification_service import notify_quietly
from baroni.services.payments import payment_service

logger = logging.getLogger(__name__)

OPEN_STATUSES = (AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS)
RECONCILED_PAYMENTS = (PaymentStatus.PENDING, PaymentStatus.COMPLETED)


class Decision(str, enum.Enum):
    COMPLETE = "complete"
    NO_SHOW = "no_show"


def decide(
    appointment: Appointment,
    now: datetime,
    complete_seconds: int,
    timeout_minutes: int,
) -> Optional[Decision]:
    duration = appointment.call_duration or 0
    if duration >= complete_seconds:
        return Decision.COMPLETE

    start = start_instant(appointment)
    if start is None:
        return None
    elapsed_minutes = (now - start).total_seconds() / 60
    if elapsed_minutes < timeout_minutes:
        return None
    return Decision.COMPLETE if duration > 0 else Decision.NO_SHOW


class ReconciliationScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker = async_session,
        clock: Clock = system_clock,
        interval_seconds: Optional[int] = None,
        complete_seconds: Optional[int] = None,
        timeout_minutes: Optional[int] = None,
        lock_timeout_minutes: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.interval_seconds = interval_seconds or settings.RECONCILIATION_INTERVAL_SECONDS
        self.complete_seconds = complete_seconds or settings.COMPLETE_DURATION_SECONDS
        self.timeout_minutes = timeout_minutes or settings.NO_SHOW_TIMEOUT_MINUTES
        self.lock_timeout_minutes = lock_timeout_minutes or settings.SLOT_LOCK_TIMEOUT_MINUTES
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="reconciliation-scheduler")
        logger.info("Reconciliation scheduler started (every %ss)", self.interval_seconds)
        return self._task

    async def stop(self) -> None:
        if not self.running:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Reconciliation tick failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> dict:
        """One reconciliation pass. Returns counters for the tick."""
        now = self.clock.now()
        summary = {"checked": 0, "completed": 0, "no_show": 0, "errors": 0}

        async with self.session_factory() as db:
            summary["locks"] = await release_expired_locks(db, now, self.lock_timeout_minutes)

            result = await db.execute(
                select(Appointment.id).where(
                    Appointment.status.in_(OPEN_STATUSES),
                    Appointment.payment_status.in_(RECONCILED_PAYMENTS),
                )
            )
            candidate_ids = list(result.scalars().all())

            for appointment_id in candidate_ids:
                summary["checked"] += 1
                try:
                    outcome = await self._reconcile(db, appointment_id, now)
                except Exception:
                    await db.rollback()
                    summary["errors"] += 1
                    logger.exception("Failed to reconcile appointment %s", appointment_id)
                    continue
                if outcome == Decision.COMPLETE:
                    summary["completed"] += 1
                elif outcome == Decision.NO_SHOW:
                    summary["no_show"] += 1

        if summary["checked"]:
            logger.info(
                "Reconciliation: %d checked, %d completed, %d no-show, %d errors",
                summary["checked"], summary["completed"], summary["no_show"], summary["errors"],
            )
        return summary

    async def _reconcile(self, db: AsyncSession, appointment_id: UUID, now: datetime) -> Optional[Decision]:
        result = await db.execute(
            select(Appointment).where(Appointment.id == appointment_id).execution_options(populate_existing=True)
        )
        appointment = result.scalar_one_or_none()
        if appointment is None or appointment.status not in OPEN_STATUSES:
            return None

        decision = decide(appointment, now, self.complete_seconds, self.timeout_minutes)
        if decision == Decision.COMPLETE:
            return decision if await self._complete(db, appointment, now) else None
        if decision == Decision.NO_SHOW:
            return decision if await self._no_show(db, appointment) else None
        return None

    async def _claim(self, db: AsyncSession, appointment_id: UUID, **values) -> bool:
        result = await db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status.in_(OPEN_STATUSES))
            .values(updated_at=datetime.utcnow(), **values)
        )
        return result.rowcount == 1

    async def _complete(self, db: AsyncSession, appointment: Appointment, now: datetime) -> bool:
        appointment_id, star_id, fan_id = appointment.id, appointment.star_id, appointment.fan_id
        lineage = await lineage_ids(db, appointment)

        claimed = await self._claim(
            db, appointment_id,
            status=AppointmentStatus.COMPLETED,
            payment_status=PaymentStatus.COMPLETED,
            completed_at=now,
        )
        if not claimed:
            await db.rollback()
            return False
        await db.commit()

        try:
            await payment_service.move_escrow_to_jackpot(db, star_id, appointment_id, lineage)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Failed to move escrow to jackpot for appointment %s", appointment_id)

        completed = await db.get(Appointment, appointment_id, populate_existing=True)
        await notify_quietly(db, "APPOINTMENT_COMPLETED", completed)
        await delete_conversation_between(db, fan_id, star_id)
        logger.info("Appointment %s completed", appointment_id)
        return True

    async def _no_show(self, db: AsyncSession, appointment: Appointment) -> bool:
        appointment_id = appointment.id
        claimed = await self._claim(
            db, appointment_id,
            status=AppointmentStatus.RESCHEDULED,
            reschedule_reason=RescheduleReason.NO_SHOW,
        )
        if not claimed:
            await db.rollback()
            return False
        await db.commit()
        logger.info("Appointment %s marked as no-show", appointment_id)
        return True

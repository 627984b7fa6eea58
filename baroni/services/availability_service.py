"""Star availability calendar.

A star publishes one availability per local date, each holding a set of
slots. Weekly mode repeats a date across six consecutive weeks and daily
mode across seven consecutive days. Deleting a slot from a recurring
availability removes the same slot from every sibling in that mode.
"""

import enum
import logging
from datetime import date, timedelta
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.clock import Clock, system_clock
from baroni.core.errors import ActiveAppointmentError, NotFoundError, ValidationFailedError
from baroni.models.appointment import Appointment, ACTIVE_STATUSES
from baroni.models.availability import Availability, TimeSlot, SlotStatus
from baroni.models.user import User
from baroni.utils.timezone import format_ymd, local_now, normalize_slot, parse_ymd, slot_start_minutes

logger = logging.getLogger(__name__)

WEEKLY_OCCURRENCES = 6
DAILY_OCCURRENCES = 7

SlotInput = Union[str, dict]


class RecurrenceMode(str, enum.Enum):
    SPECIFIC = "specific"
    WEEKLY = "weekly"
    DAILY = "daily"


def mode_of(availability: Availability) -> RecurrenceMode:
    if availability.is_weekly:
        return RecurrenceMode.WEEKLY
    if availability.is_daily:
        return RecurrenceMode.DAILY
    return RecurrenceMode.SPECIFIC


def occurrence_dates(start: date, mode: RecurrenceMode) -> list[date]:
    if mode == RecurrenceMode.WEEKLY:
        return [start + timedelta(weeks=i) for i in range(WEEKLY_OCCURRENCES)]
    if mode == RecurrenceMode.DAILY:
        return [start + timedelta(days=i) for i in range(DAILY_OCCURRENCES)]
    return [start]


def parse_slot_inputs(items: Iterable[SlotInput]) -> list[tuple[str, Optional[SlotStatus]]]:
    """Canonicalize incoming slots. Later duplicates win."""
    parsed: dict[str, Optional[SlotStatus]] = {}
    invalid = []
    for item in items:
        raw, status = (item, None) if isinstance(item, str) else (item.get("slot"), item.get("status"))
        try:
            slot = normalize_slot(raw)
        except ValueError:
            invalid.append(str(raw))
            continue
        if status is not None:
            try:
                status = SlotStatus(status)
            except ValueError:
                invalid.append(f"{raw} (status {status})")
                continue
            if status == SlotStatus.LOCKED:
                invalid.append(f"{raw} (status locked is set by payments only)")
                continue
        parsed[slot] = status

    if invalid:
        raise ValidationFailedError(f"Invalid time slots: {', '.join(invalid)}")
    if not parsed:
        raise ValidationFailedError("At least one time slot is required")
    return list(parsed.items())


async def find_active_appointment(db: AsyncSession, slot_ids: Iterable[UUID]) -> Optional[Appointment]:
    ids = list(slot_ids)
    if not ids:
        return None
    result = await db.execute(
        select(Appointment)
        .where(Appointment.time_slot_id.in_(ids), Appointment.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    return result.scalars().first()


async def get_availability(db: AsyncSession, star_id: UUID, availability_id: UUID) -> Availability:
    result = await db.execute(
        select(Availability).where(Availability.id == availability_id, Availability.user_id == star_id)
    )
    availability = result.scalar_one_or_none()
    if availability is None:
        raise NotFoundError("Availability not found")
    return availability


async def list_availabilities(db: AsyncSession, star_id: UUID, from_date: Optional[str] = None) -> list[Availability]:
    query = select(Availability).where(Availability.user_id == star_id)
    if from_date:
        query = query.where(Availability.date >= from_date)
    result = await db.execute(query.order_by(Availability.date))
    return list(result.scalars().all())


async def switch_availability_mode(db: AsyncSession, star: User, mode: RecurrenceMode, today: date) -> int:
    """Drop future availabilities that do not match `mode`.

    Refuses (400) when any of them still carries an active appointment.
    Returns the number of availabilities deleted.
    """
    future = await list_availabilities(db, star.id, from_date=format_ymd(today))
    inconsistent = [a for a in future if mode_of(a) != mode]
    if not inconsistent:
        return 0

    active = await find_active_appointment(db, [s.id for a in inconsistent for s in a.time_slots])
    if active is not None:
        raise ActiveAppointmentError(
            f"Cannot switch to {mode.value} availability: an active appointment exists on {active.date} at {active.time}",
            appointment_id=active.id,
        )

    for availability in inconsistent:
        await db.delete(availability)
    await db.flush()
    logger.info("Mode switch to %s for star %s removed %d availabilities", mode.value, star.id, len(inconsistent))
    return len(inconsistent)


async def _upsert_one(
    db: AsyncSession,
    star_id: UUID,
    day: str,
    slots: list[tuple[str, Optional[SlotStatus]]],
    mode: RecurrenceMode,
    set_mode: bool = True,
) -> Availability:
    result = await db.execute(
        select(Availability).where(Availability.user_id == star_id, Availability.date == day)
    )
    availability = result.scalar_one_or_none()

    if availability is None:
        availability = Availability(
            user_id=star_id,
            date=day,
            is_weekly=mode == RecurrenceMode.WEEKLY,
            is_daily=mode == RecurrenceMode.DAILY,
            time_slots=[TimeSlot(slot=slot, status=status or SlotStatus.AVAILABLE) for slot, status in slots],
        )
        db.add(availability)
        return availability

    if set_mode:
        availability.is_weekly = mode == RecurrenceMode.WEEKLY
        availability.is_daily = mode == RecurrenceMode.DAILY
    by_slot = {s.slot: s for s in availability.time_slots}
    for slot, status in slots:
        existing = by_slot.get(slot)
        if existing is None:
            availability.time_slots.append(TimeSlot(slot=slot, status=status or SlotStatus.AVAILABLE))
            continue
        if status is None or existing.status == status:
            continue
        if existing.status != SlotStatus.AVAILABLE and await find_active_appointment(db, [existing.id]):
            logger.warning("Keeping status of slot %s on %s: it holds an active appointment", slot, day)
            continue
        existing.status = status
    return availability


async def upsert_availability(
    db: AsyncSession,
    star: User,
    date_str: str,
    time_slots: Iterable[SlotInput],
    is_weekly: Optional[bool] = None,
    is_daily: Optional[bool] = None,
    clock: Clock = system_clock,
) -> list[Availability]:
    """Create or merge the star's availability for a date (and its repeats).

    Existing slots keep their status unless the request names a different
    one. Passing either recurrence flag also switches the star's future
    calendar to that mode; without a flag an existing date keeps its mode.
    """
    if is_weekly and is_daily:
        raise ValidationFailedError("is_weekly and is_daily cannot both be true")

    try:
        start = parse_ymd(date_str)
    except ValueError as e:
        raise ValidationFailedError(str(e))
    slots = parse_slot_inputs(time_slots)

    now_local = local_now(clock.now(), star.country)
    today = now_local.date()
    if start < today:
        raise ValidationFailedError("Cannot create availability for past dates")
    if start == today:
        now_minutes = now_local.hour * 60 + now_local.minute
        past = [slot for slot, _ in slots if slot_start_minutes(slot) <= now_minutes]
        if past:
            raise ValidationFailedError(f"Cannot create slots that have already started: {', '.join(past)}")

    mode = RecurrenceMode.WEEKLY if is_weekly else RecurrenceMode.DAILY if is_daily else RecurrenceMode.SPECIFIC
    explicit_mode = is_weekly is not None or is_daily is not None
    try:
        if explicit_mode:
            await switch_availability_mode(db, star, mode, today)

        availabilities = []
        for day in occurrence_dates(start, mode):
            availabilities.append(await _upsert_one(db, star.id, format_ymd(day), slots, mode, set_mode=explicit_mode))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for availability in availabilities:
        await db.refresh(availability, attribute_names=["time_slots"])
    logger.info("Upserted %d %s availabilities for star %s from %s", len(availabilities), mode.value, star.id, date_str)
    return availabilities


async def _delete_slot(db: AsyncSession, star: User, availability: Availability, target: TimeSlot) -> dict:
    if target.status != SlotStatus.AVAILABLE:
        active = await find_active_appointment(db, [target.id])
        if active is not None:
            raise ActiveAppointmentError(
                "Cannot delete a time slot with an active appointment", appointment_id=active.id
            )

    summary = {"processed": 1, "removed": 0, "deleted_availabilities": 0, "skipped": 0}
    affected = [(availability, target)]

    mode = mode_of(availability)
    if mode != RecurrenceMode.SPECIFIC:
        siblings = [a for a in await list_availabilities(db, star.id) if a.id != availability.id and mode_of(a) == mode]
        for sibling in siblings:
            match = next((s for s in sibling.time_slots if s.slot == target.slot or s.id == target.id), None)
            if match is None:
                continue
            summary["processed"] += 1
            if match.status != SlotStatus.AVAILABLE and await find_active_appointment(db, [match.id]):
                logger.info("Skipping %s on %s: active appointment", match.slot, sibling.date)
                summary["skipped"] += 1
                continue
            affected.append((sibling, match))

    try:
        for owner, slot in affected:
            owner.time_slots.remove(slot)
            summary["removed"] += 1
            if not owner.time_slots:
                await db.delete(owner)
                summary["deleted_availabilities"] += 1
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Deleted slot %s for star %s: %s", target.slot, star.id, summary)
    return summary


async def delete_slot_by_date(db: AsyncSession, star: User, date_str: str, slot: str) -> dict:
    try:
        canonical = normalize_slot(slot)
    except ValueError as e:
        raise ValidationFailedError(str(e))

    result = await db.execute(
        select(Availability).where(Availability.user_id == star.id, Availability.date == date_str)
    )
    availability = result.scalar_one_or_none()
    if availability is None:
        raise NotFoundError("Availability not found for this date")
    target = next((s for s in availability.time_slots if s.slot == canonical), None)
    if target is None:
        raise NotFoundError("Time slot not found")
    return await _delete_slot(db, star, availability, target)


async def delete_slot_by_id(db: AsyncSession, star: User, availability_id: UUID, slot_id: UUID) -> dict:
    availability = await get_availability(db, star.id, availability_id)
    target = next((s for s in availability.time_slots if s.id == slot_id), None)
    if target is None:
        raise NotFoundError("Time slot not found")
    return await _delete_slot(db, star, availability, target)


async def delete_availability(db: AsyncSession, star: User, availability_id: UUID) -> None:
    availability = await get_availability(db, star.id, availability_id)
    active = await find_active_appointment(db, [s.id for s in availability.time_slots])
    if active is not None:
        raise ActiveAppointmentError(
            "Cannot delete an availability with an active appointment", appointment_id=active.id
        )
    await db.delete(availability)
    await db.commit()
    logger.info("Deleted availability %s (%s) for star %s", availability_id, availability.date, star.id)

"""Star availability endpoints."""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.clock import Clock
from baroni.core.database import get_db
from baroni.core.deps import get_clock, get_current_user, require_role
from baroni.models.user import User, UserRole
from baroni.schemas.availability import AvailabilityOut, AvailabilityUpsert, SlotDeleteResult
from baroni.services import availability_service
from baroni.services.appointment_service import get_star
from baroni.utils.timezone import format_ymd, local_now

router = APIRouter()

star_only = require_role(UserRole.STAR, UserRole.ADMIN)


@router.post("", response_model=list[AvailabilityOut], status_code=status.HTTP_201_CREATED)
async def upsert_availability(
    payload: AvailabilityUpsert,
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Create or merge availability for a date (weekly/daily repeat it)."""
    return await availability_service.upsert_availability(
        db,
        current_user,
        payload.date,
        payload.slot_inputs(),
        is_weekly=payload.is_weekly,
        is_daily=payload.is_daily,
        clock=clock,
    )


@router.get("", response_model=list[AvailabilityOut])
async def list_my_availability(
    from_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.list_availabilities(db, current_user.id, from_date)


@router.get("/star/{star_id}", response_model=list[AvailabilityOut])
async def list_star_availability(
    star_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Upcoming availability of a star, as shown to fans."""
    star = await get_star(db, star_id)
    today = format_ymd(local_now(clock.now(), star.country).date())
    return await availability_service.list_availabilities(db, star.id, from_date=today)


@router.delete("/slot", response_model=SlotDeleteResult)
async def delete_slot_by_date(
    date: str = Query(..., description="YYYY-MM-DD"),
    slot: str = Query(..., description='e.g. "09:00 - 09:20"'),
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
):
    """Delete one slot; recurring availabilities lose it on every sibling date."""
    return await availability_service.delete_slot_by_date(db, current_user, date, slot)


@router.get("/{availability_id}", response_model=AvailabilityOut)
async def get_availability(
    availability_id: UUID,
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.get_availability(db, current_user.id, availability_id)


@router.delete("/{availability_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability(
    availability_id: UUID,
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
):
    await availability_service.delete_availability(db, current_user, availability_id)


@router.delete("/{availability_id}/slots/{slot_id}", response_model=SlotDeleteResult)
async def delete_slot_by_id(
    availability_id: UUID,
    slot_id: UUID,
    current_user: User = Depends(star_only),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.delete_slot_by_id(db, current_user, availability_id, slot_id)

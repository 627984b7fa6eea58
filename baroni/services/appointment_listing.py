"""Ordering and paging for appointment lists.

Lists are sorted globally by status bucket, then by start instant, then
by id, and paged afterwards. The sort runs in memory over the caller's
whole visible set, which is fine at current volumes; a strategy that
pushes the ordering into SQL can replace `InMemoryListingStrategy`
without touching callers.
"""

import math
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.models.appointment import Appointment, AppointmentStatus
from baroni.utils.timezone import parse_legacy_start

STATUS_PRIORITY = {
    AppointmentStatus.PENDING: 1,
    AppointmentStatus.APPROVED: 2,
    AppointmentStatus.IN_PROGRESS: 2,
    AppointmentStatus.COMPLETED: 3,
    AppointmentStatus.CANCELLED: 4,
    AppointmentStatus.REJECTED: 4,
}
OTHER_PRIORITY = 5


def to_public_status(status: AppointmentStatus) -> AppointmentStatus:
    """`in_progress` is internal bookkeeping; clients see `approved`."""
    if status == AppointmentStatus.IN_PROGRESS:
        return AppointmentStatus.APPROVED
    return status


def start_instant(appointment: Appointment) -> Optional[datetime]:
    if appointment.utc_start_time is not None:
        return appointment.utc_start_time
    return parse_legacy_start(appointment.date, appointment.time)


def sort_key(appointment: Appointment) -> tuple:
    start = start_instant(appointment)
    return (
        STATUS_PRIORITY.get(appointment.status, OTHER_PRIORITY),
        start if start is not None else datetime.max,
        str(appointment.id),
    )


def sort_appointments(appointments: Sequence[Appointment]) -> list[Appointment]:
    return sorted(appointments, key=sort_key)


class Page:
    def __init__(self, items: list, total: int, page: int, limit: int):
        self.items = items
        self.total = total
        self.page = page
        self.limit = limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class InMemoryListingStrategy:
    async def fetch_page(self, db: AsyncSession, query: Select, page: int, limit: int) -> Page:
        result = await db.execute(query)
        ordered = sort_appointments(result.scalars().all())
        offset = (page - 1) * limit
        return Page(ordered[offset:offset + limit], len(ordered), page, limit)


default_listing_strategy = InMemoryListingStrategy()

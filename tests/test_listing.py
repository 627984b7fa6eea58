"""Tests for appointment ordering, visibility and pagination."""

import uuid
from datetime import datetime

import pytest

from baroni.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from baroni.services.appointment_listing import sort_appointments, start_instant, to_public_status


def make(status, date, time="10:00 - 10:20", utc=None, **kw):
    return Appointment(
        id=kw.pop("id", uuid.uuid4()),
        star_id=kw.pop("star_id", uuid.uuid4()),
        fan_id=kw.pop("fan_id", uuid.uuid4()),
        date=date,
        time=time,
        utc_start_time=utc,
        price=100,
        status=status,
        payment_status=kw.pop("payment_status", PaymentStatus.PENDING),
        **kw,
    )


def test_status_buckets_come_before_dates():
    pending = make(AppointmentStatus.PENDING, "2026-03-11", utc=datetime(2026, 3, 11, 10))
    completed = make(AppointmentStatus.COMPLETED, "2026-03-09", utc=datetime(2026, 3, 9, 10))
    approved = make(AppointmentStatus.APPROVED, "2026-03-12", utc=datetime(2026, 3, 12, 10))
    cancelled = make(AppointmentStatus.CANCELLED, "2026-03-10", utc=datetime(2026, 3, 10, 10))

    ordered = sort_appointments([pending, completed, approved, cancelled])
    assert ordered == [pending, approved, completed, cancelled]


def test_in_progress_sorts_with_approved_and_rescheduled_last():
    rescheduled = make(AppointmentStatus.RESCHEDULED, "2026-03-01", utc=datetime(2026, 3, 1, 10))
    in_progress = make(AppointmentStatus.IN_PROGRESS, "2026-03-12", utc=datetime(2026, 3, 12, 9))
    approved = make(AppointmentStatus.APPROVED, "2026-03-12", utc=datetime(2026, 3, 12, 10))
    rejected = make(AppointmentStatus.REJECTED, "2026-03-02", utc=datetime(2026, 3, 2, 10))

    assert sort_appointments([rescheduled, approved, rejected, in_progress]) == [
        in_progress, approved, rejected, rescheduled,
    ]


def test_legacy_rows_fall_back_to_date_and_time():
    legacy = make(AppointmentStatus.PENDING, "2026-03-11", time="09:00 AM - 09:20 AM")
    assert start_instant(legacy) == datetime(2026, 3, 11, 9, 0)

    modern = make(AppointmentStatus.PENDING, "2026-03-11", utc=datetime(2026, 3, 11, 9, 30))
    broken = make(AppointmentStatus.PENDING, "someday", time="later")
    assert sort_appointments([broken, modern, legacy]) == [legacy, modern, broken]


def test_ties_break_on_id():
    when = datetime(2026, 3, 11, 10)
    a = make(AppointmentStatus.PENDING, "2026-03-11", utc=when, id=uuid.UUID(int=2))
    b = make(AppointmentStatus.PENDING, "2026-03-11", utc=when, id=uuid.UUID(int=1))
    assert sort_appointments([a, b]) == [b, a]


def test_public_status_hides_in_progress():
    assert to_public_status(AppointmentStatus.IN_PROGRESS) == AppointmentStatus.APPROVED
    assert to_public_status(AppointmentStatus.COMPLETED) == AppointmentStatus.COMPLETED


async def _seed(db, users):
    rows = [
        make(AppointmentStatus.COMPLETED, "2026-03-09", utc=datetime(2026, 3, 9, 10), star_id=users.star.id, fan_id=users.fan.id),
        make(AppointmentStatus.PENDING, "2026-03-12", utc=datetime(2026, 3, 12, 10), star_id=users.star.id, fan_id=users.fan.id),
        make(AppointmentStatus.CANCELLED, "2026-03-10", utc=datetime(2026, 3, 10, 10), star_id=users.star.id, fan_id=users.fan.id),
        make(AppointmentStatus.IN_PROGRESS, "2026-03-11", utc=datetime(2026, 3, 11, 10), star_id=users.star.id, fan_id=users.fan.id),
        make(AppointmentStatus.PENDING, "2026-03-11", utc=datetime(2026, 3, 11, 10), star_id=users.star.id, fan_id=users.fan.id),
        make(AppointmentStatus.PENDING, "2026-03-13", utc=datetime(2026, 3, 13, 10), star_id=users.star.id,
             fan_id=users.other_fan.id, payment_status=PaymentStatus.INITIATED),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


@pytest.mark.asyncio
async def test_listing_is_sorted_globally_then_paged(client, db, users, auth):
    rows = await _seed(db, users)

    page1 = (await client.get("/api/v1/appointments", headers=auth(users.fan), params={"limit": 2})).json()
    page2 = (await client.get("/api/v1/appointments", headers=auth(users.fan), params={"limit": 2, "page": 2})).json()
    page3 = (await client.get("/api/v1/appointments", headers=auth(users.fan), params={"limit": 2, "page": 3})).json()

    assert page1["total"] == 5
    assert page1["total_pages"] == 3
    ids = [a["id"] for a in page1["items"] + page2["items"] + page3["items"]]
    assert ids == [str(rows[i].id) for i in (4, 1, 3, 0, 2)]
    # in_progress shows as approved
    assert page2["items"][0]["status"] == "approved"


@pytest.mark.asyncio
async def test_visibility_by_role(client, db, users, auth):
    await _seed(db, users)

    star = (await client.get("/api/v1/appointments", headers=auth(users.star))).json()
    assert star["total"] == 5  # the initiated booking is hidden

    other = (await client.get("/api/v1/appointments", headers=auth(users.other_fan))).json()
    assert other["total"] == 1

    admin = (await client.get("/api/v1/appointments", headers=auth(users.admin))).json()
    assert admin["total"] == 6


@pytest.mark.asyncio
async def test_page_size_is_capped(client, users, auth):
    resp = await client.get("/api/v1/appointments", headers=auth(users.fan), params={"limit": 1000})
    assert resp.status_code == 400

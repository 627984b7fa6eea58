"""Tests for the payment ledger and the gateway callback."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from baroni.core.config import settings
from baroni.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from baroni.models.availability import TimeSlot, SlotStatus
from baroni.models.star_wallet import StarWallet
from baroni.models.transaction import Transaction, TransactionStatus
from baroni.models.user import User
from baroni.services.payments import CoinPayment, ExternalPaymentClient, PaymentError, payment_service


async def book_hybrid(client, auth, users, availability):
    gateway = AsyncMock(return_value={"payment_id": "ext-777", "message": "Confirm on your phone"})
    with patch.object(payment_service.external, "initiate_payment", new=gateway):
        resp = await client.post("/api/v1/appointments", headers=auth(users.poor_fan), json={
            "star_id": str(users.star.id),
            "availability_id": str(availability.id),
            "time_slot_id": str(availability.time_slots[0].id),
            "price": 200,
        })
    assert resp.status_code == 201
    return resp.json()


async def escrow_of(db, star_id):
    result = await db.execute(
        select(StarWallet.escrow).where(StarWallet.star_id == star_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none() or 0


@pytest.mark.asyncio
async def test_successful_callback_books_the_slot(client, db, users, auth, availability, reload):
    body = await book_hybrid(client, auth, users, availability)
    appointment_id = uuid.UUID(body["appointment"]["id"])

    resp = await client.post("/api/v1/payments/callback", json={"transaction_id": "ext-777", "status": "completed"})
    assert resp.status_code == 200
    assert resp.json() == {"processed": True, "status": "completed", "appointments": 1}

    appt = await reload(Appointment, appointment_id)
    assert appt.status == AppointmentStatus.PENDING
    assert appt.payment_status == PaymentStatus.PENDING
    assert (await reload(TimeSlot, availability.time_slots[0].id)).status == SlotStatus.UNAVAILABLE
    assert await escrow_of(db, users.star.id) == 200

    listing = (await client.get("/api/v1/appointments", headers=auth(users.star))).json()
    assert listing["total"] == 1

    replay = await client.post("/api/v1/payments/callback", json={"transaction_id": "ext-777", "status": "completed"})
    assert replay.status_code == 200
    assert replay.json()["processed"] is False
    assert await escrow_of(db, users.star.id) == 200


@pytest.mark.asyncio
async def test_failed_callback_returns_coins_and_frees_the_slot(client, db, users, auth, availability, reload):
    body = await book_hybrid(client, auth, users, availability)
    appointment_id = uuid.UUID(body["appointment"]["id"])
    assert (await reload(User, users.poor_fan.id)).coin_balance == 0

    resp = await client.post(
        "/api/v1/payments/callback",
        json={"transaction_id": "ext-777", "status": "failed", "reason": "declined"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"processed": True, "status": "failed", "appointments": 1}

    appt = await reload(Appointment, appointment_id)
    assert appt.status == AppointmentStatus.CANCELLED
    assert appt.payment_status == PaymentStatus.REFUNDED
    slot = await reload(TimeSlot, availability.time_slots[0].id)
    assert slot.status == SlotStatus.AVAILABLE
    assert slot.payment_reference_id is None
    assert (await reload(User, users.poor_fan.id)).coin_balance == 50
    assert await escrow_of(db, users.star.id) == 0


@pytest.mark.asyncio
async def test_late_callback_leaves_another_lock_alone(client, db, users, auth, availability, reload):
    body = await book_hybrid(client, auth, users, availability)
    appointment_id = uuid.UUID(body["appointment"]["id"])
    slot_id = availability.time_slots[0].id

    # The booking ended and another payment locked the slot before the gateway answered
    appt = await reload(Appointment, appointment_id)
    appt.status = AppointmentStatus.CANCELLED
    slot = await reload(TimeSlot, slot_id)
    slot.payment_reference_id = "ext-B"
    await db.commit()

    resp = await client.post("/api/v1/payments/callback", json={"transaction_id": "ext-777", "status": "completed"})
    assert resp.status_code == 200
    assert resp.json() == {"processed": True, "status": "refunded", "appointments": 0}

    slot = await reload(TimeSlot, slot_id)
    assert slot.status == SlotStatus.LOCKED
    assert slot.payment_reference_id == "ext-B"
    assert await escrow_of(db, users.star.id) == 0
    assert (await reload(User, users.poor_fan.id)).coin_balance == 200
    assert (await reload(Appointment, appointment_id)).payment_status == PaymentStatus.INITIATED


@pytest.mark.asyncio
async def test_unknown_payment_is_404(client):
    resp = await client.post("/api/v1/payments/callback", json={"transaction_id": "nope", "status": "completed"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_callback_token_is_checked_when_configured(client, users, auth, availability, monkeypatch):
    await book_hybrid(client, auth, users, availability)
    monkeypatch.setattr(settings, "EXTERNAL_PAYMENT_CALLBACK_SECRET", "s3cret")
    payload = {"transaction_id": "ext-777", "status": "completed"}

    assert (await client.post("/api/v1/payments/callback", json=payload)).status_code == 403
    bad = await client.post("/api/v1/payments/callback", json=payload, headers={"X-Callback-Token": "guess"})
    assert bad.status_code == 403

    ok = await client.post("/api/v1/payments/callback", json=payload, headers={"X-Callback-Token": "s3cret"})
    assert ok.status_code == 200
    assert ok.json()["processed"] is True


@pytest.mark.asyncio
async def test_coin_payment_debits_and_holds_escrow(db, users, reload):
    payment = await payment_service.create_hybrid_transaction(
        db, payer_id=users.fan.id, receiver_id=users.star.id, amount=300,
    )
    await db.commit()

    assert isinstance(payment, CoinPayment)
    assert (await reload(User, users.fan.id)).coin_balance == 700
    tx = await reload(Transaction, payment.transaction_id)
    assert tx.status == TransactionStatus.PENDING.value
    assert tx.payment_mode == "coin"
    assert await escrow_of(db, users.star.id) == 300


@pytest.mark.asyncio
async def test_cancel_returns_coins_once(db, users, reload):
    payment = await payment_service.create_hybrid_transaction(
        db, payer_id=users.fan.id, receiver_id=users.star.id, amount=300,
    )
    await payment_service.cancel_transaction(db, payment.transaction_id)
    await db.commit()
    assert (await reload(User, users.fan.id)).coin_balance == 1000

    with pytest.raises(PaymentError):
        await payment_service.cancel_transaction(db, payment.transaction_id)
    with pytest.raises(PaymentError):
        await payment_service.refund_transaction(db, payment.transaction_id)


@pytest.mark.asyncio
async def test_refund_only_from_completed(db, users, reload):
    payment = await payment_service.create_hybrid_transaction(
        db, payer_id=users.fan.id, receiver_id=users.star.id, amount=100,
    )
    with pytest.raises(PaymentError):
        await payment_service.refund_transaction(db, payment.transaction_id)

    await payment_service.complete_transaction(db, payment.transaction_id)
    await payment_service.refund_transaction(db, payment.transaction_id)
    await db.commit()

    assert (await reload(Transaction, payment.transaction_id)).status == TransactionStatus.REFUNDED.value
    assert (await reload(User, users.fan.id)).coin_balance == 1000


@pytest.mark.asyncio
async def test_ledger_rejects_bad_requests(db, users):
    with pytest.raises(PaymentError):
        await payment_service.create_hybrid_transaction(
            db, payer_id=users.fan.id, receiver_id=users.star.id, amount=0,
        )
    with pytest.raises(PaymentError, match="contact"):
        await payment_service.create_hybrid_transaction(
            db, payer_id=users.poor_fan.id, receiver_id=users.star.id, amount=200,
        )
    with pytest.raises(PaymentError):
        await payment_service.get_transaction(db, uuid.uuid4())
    with pytest.raises(PaymentError):
        await payment_service.move_escrow_to_jackpot(db, users.star.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_unconfigured_gateway_refuses():
    client = ExternalPaymentClient(base_url="", api_key="")
    assert not client.configured
    with pytest.raises(PaymentError):
        await client.initiate_payment("+22370000003", 150, "appointment_payment")

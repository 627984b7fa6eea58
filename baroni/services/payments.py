"""Payment ledger used by the booking flows.

Booking code never touches coin balances or escrow rows directly; it goes
through `payment_service`. Coin-only payments settle immediately and their
funds are held in the star's escrow. Hybrid payments debit whatever coins
the fan has, ask the external gateway for the rest, and stay `initiated`
until the gateway calls back.

Transaction status moves:

    coin:   pending -> cancelled | completed -> refunded
    hybrid: initiated -> completed -> refunded
            initiated -> failed
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union
from uuid import UUID

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.config import settings
from baroni.models.transaction import (
    Transaction,
    TransactionType,
    TransactionStatus,
    PaymentMode,
    TRANSACTION_DESCRIPTIONS,
)
from baroni.models.user import User
from baroni.services import star_wallet

logger = logging.getLogger(__name__)

EXTERNAL_REFUND_WINDOW_MINUTES = 15


class PaymentError(Exception):
    """The ledger refused an operation. Nothing was written."""


@dataclass
class CoinPayment:
    transaction_id: UUID
    coin_amount: int
    payment_mode: str = PaymentMode.COIN.value
    external_payment_id: Optional[str] = None
    external_payment_message: Optional[str] = None


@dataclass
class HybridPayment:
    transaction_id: UUID
    coin_amount: int
    external_amount: int
    external_payment_id: str
    external_payment_message: Optional[str] = None
    payment_mode: str = PaymentMode.HYBRID.value


PaymentResult = Union[CoinPayment, HybridPayment]


class ExternalPaymentClient:
    """Thin client for the mobile-money gateway that covers coin shortfalls."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = base_url if base_url is not None else settings.EXTERNAL_PAYMENT_URL
        self.api_key = api_key if api_key is not None else settings.EXTERNAL_PAYMENT_API_KEY
        self.timeout = timeout or settings.EXTERNAL_PAYMENT_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def initiate_payment(self, msisdn: str, amount: int, reason: str, star_name: Optional[str] = None) -> dict:
        """Start a payment on the fan's phone. Returns {"payment_id", "message"}."""
        if not self.configured:
            raise PaymentError("External payment provider is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "msisdn": msisdn,
            "amount": amount,
            "reason": reason,
            "star_name": star_name,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url.rstrip('/')}/payments", headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("External payment request failed: %s", e)
            raise PaymentError("Failed to reach external payment provider") from e

        if response.status_code not in (200, 201):
            logger.error("External payment error: %s - %s", response.status_code, response.text)
            raise PaymentError("Failed to initiate external payment")

        data = response.json()
        payment_id = data.get("transactionId") or data.get("payment_id")
        if not payment_id:
            raise PaymentError("External payment provider returned no payment id")
        return {"payment_id": str(payment_id), "message": data.get("message")}


class LedgerPaymentService:
    def __init__(self, external: Optional[ExternalPaymentClient] = None):
        self.external = external or ExternalPaymentClient()

    async def _debit(self, db: AsyncSession, user_id: UUID, amount: int) -> None:
        if amount <= 0:
            return
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.coin_balance >= amount)
            .values(coin_balance=User.coin_balance - amount)
        )
        if result.rowcount != 1:
            raise PaymentError("Insufficient coin balance")

    async def _credit(self, db: AsyncSession, user_id: UUID, amount: int) -> None:
        if amount <= 0:
            return
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(coin_balance=User.coin_balance + amount)
        )

    async def get_transaction(self, db: AsyncSession, transaction_id: UUID) -> Transaction:
        result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise PaymentError("Transaction not found")
        return transaction

    async def get_by_external_id(self, db: AsyncSession, external_payment_id: str) -> Transaction:
        result = await db.execute(
            select(Transaction).where(Transaction.external_payment_id == external_payment_id)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise PaymentError("Transaction not found")
        return transaction

    async def create_hybrid_transaction(
        self,
        db: AsyncSession,
        *,
        payer_id: UUID,
        receiver_id: UUID,
        amount: int,
        payer_phone: Optional[str] = None,
        star_name: Optional[str] = None,
        appointment_id: Optional[UUID] = None,
        type: TransactionType = TransactionType.APPOINTMENT_PAYMENT,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """Charge `amount` from coins, topping up through the gateway if short.

        Writes are flushed, not committed: the caller commits them together
        with the booking or rolls everything back.
        """
        if amount <= 0:
            raise PaymentError("Amount must be greater than 0")

        result = await db.execute(select(User.coin_balance).where(User.id == payer_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise PaymentError("Payer not found")

        meta = dict(metadata or {})
        if appointment_id is not None:
            meta["appointment_id"] = str(appointment_id)
        description = description or TRANSACTION_DESCRIPTIONS.get(type)

        if balance >= amount:
            await self._debit(db, payer_id, amount)
            transaction = Transaction(
                type=type.value,
                payer_id=payer_id,
                receiver_id=receiver_id,
                amount=amount,
                coin_amount=amount,
                external_amount=0,
                payment_mode=PaymentMode.COIN.value,
                status=TransactionStatus.PENDING.value,
                description=description,
                meta=meta,
            )
            db.add(transaction)
            await db.flush()
            await star_wallet.add_to_escrow(db, receiver_id, amount, appointment_id, transaction.id)
            logger.info("Coin payment %s: %d coins from %s", transaction.id, amount, payer_id)
            return CoinPayment(transaction_id=transaction.id, coin_amount=amount)

        if not payer_phone:
            raise PaymentError("User contact number is required for external payment")

        coin_amount = balance
        external_amount = amount - balance
        initiated = await self.external.initiate_payment(
            msisdn=payer_phone,
            amount=external_amount,
            reason=type.value,
            star_name=star_name,
        )

        await self._debit(db, payer_id, coin_amount)
        transaction = Transaction(
            type=type.value,
            payer_id=payer_id,
            receiver_id=receiver_id,
            amount=amount,
            coin_amount=coin_amount,
            external_amount=external_amount,
            payment_mode=PaymentMode.HYBRID.value,
            status=TransactionStatus.INITIATED.value,
            external_payment_id=initiated["payment_id"],
            description=description,
            meta=meta,
            refund_timer=datetime.utcnow() + timedelta(minutes=EXTERNAL_REFUND_WINDOW_MINUTES),
        )
        db.add(transaction)
        await db.flush()
        logger.info(
            "Hybrid payment %s initiated: %d coins + %d external (%s)",
            transaction.id, coin_amount, external_amount, initiated["payment_id"],
        )
        return HybridPayment(
            transaction_id=transaction.id,
            coin_amount=coin_amount,
            external_amount=external_amount,
            external_payment_id=initiated["payment_id"],
            external_payment_message=initiated.get("message"),
        )

    async def complete_transaction(self, db: AsyncSession, transaction_id: UUID) -> Transaction:
        """Mark a held or externally-settled payment as completed."""
        transaction = await self.get_transaction(db, transaction_id)
        if transaction.status not in (TransactionStatus.PENDING.value, TransactionStatus.INITIATED.value):
            raise PaymentError(f"Transaction is not completable (status {transaction.status})")
        transaction.status = TransactionStatus.COMPLETED.value
        transaction.refund_timer = None
        await db.flush()
        return transaction

    async def cancel_transaction(self, db: AsyncSession, transaction_id: UUID) -> Transaction:
        """Cancel a pending transaction and give the coins back to the payer."""
        transaction = await self.get_transaction(db, transaction_id)
        if transaction.status != TransactionStatus.PENDING.value:
            raise PaymentError("Transaction is not in pending status")
        await self._credit(db, transaction.payer_id, transaction.amount)
        transaction.status = TransactionStatus.CANCELLED.value
        await db.flush()
        logger.info("Transaction %s cancelled, %d coins returned", transaction.id, transaction.amount)
        return transaction

    async def fail_transaction(self, db: AsyncSession, transaction_id: UUID) -> Transaction:
        """External leg failed or timed out: return the coin part only."""
        transaction = await self.get_transaction(db, transaction_id)
        if transaction.status != TransactionStatus.INITIATED.value:
            raise PaymentError("Transaction is not in initiated status")
        await self._credit(db, transaction.payer_id, transaction.coin_amount)
        transaction.status = TransactionStatus.FAILED.value
        transaction.refund_timer = None
        await db.flush()
        logger.info("Transaction %s failed, %d coins returned", transaction.id, transaction.coin_amount)
        return transaction

    async def refund_transaction(self, db: AsyncSession, transaction_id: UUID) -> Transaction:
        """Refund a completed transaction to the payer as coins."""
        transaction = await self.get_transaction(db, transaction_id)
        if transaction.status != TransactionStatus.COMPLETED.value:
            raise PaymentError("Transaction is not in completed status")
        await self._credit(db, transaction.payer_id, transaction.amount)
        transaction.status = TransactionStatus.REFUNDED.value
        await db.flush()
        logger.info("Transaction %s refunded, %d coins returned", transaction.id, transaction.amount)
        return transaction

    async def hold_in_escrow(
        self, db: AsyncSession, transaction: Transaction, appointment_id: Optional[UUID] = None
    ) -> None:
        await star_wallet.add_to_escrow(db, transaction.receiver_id, transaction.amount, appointment_id, transaction.id)

    async def escrow_held(
        self, db: AsyncSession, star_id: UUID, appointment_id: UUID, lineage: Iterable[UUID] = ()
    ) -> bool:
        """Whether a deposit for this booking (or one it was rescheduled from) is still in escrow."""
        return await star_wallet.has_pending_deposit(db, star_id, [appointment_id, *lineage])

    async def move_escrow_to_jackpot(
        self, db: AsyncSession, star_id: UUID, appointment_id: UUID, lineage: Iterable[UUID] = ()
    ) -> int:
        try:
            return await star_wallet.move_escrow_to_jackpot(db, star_id, appointment_id, lineage)
        except star_wallet.EscrowError as e:
            raise PaymentError(str(e)) from e

    async def refund_escrow(
        self, db: AsyncSession, star_id: UUID, appointment_id: UUID, lineage: Iterable[UUID] = ()
    ) -> int:
        try:
            return await star_wallet.refund_escrow(db, star_id, appointment_id, lineage)
        except star_wallet.EscrowError as e:
            raise PaymentError(str(e)) from e


payment_service = LedgerPaymentService()

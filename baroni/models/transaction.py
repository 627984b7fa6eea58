"""Payment ledger owned by the payment service."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime
from baroni.core.database import Base


class TransactionType(str, enum.Enum):
    APPOINTMENT_PAYMENT = "appointment_payment"
    REFUND = "refund"


class PaymentMode(str, enum.Enum):
    COIN = "coin"
    HYBRID = "hybrid"


class TransactionStatus(str, enum.Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


TRANSACTION_DESCRIPTIONS = {
    TransactionType.APPOINTMENT_PAYMENT: "Appointment booked",
    TransactionType.REFUND: "Refund processed",
}


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String, nullable=False, index=True)
    payer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    coin_amount = Column(Integer, nullable=False, default=0)
    external_amount = Column(Integer, nullable=False, default=0)
    payment_mode = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    external_payment_id = Column(String, nullable=True, index=True)
    description = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    refund_timer = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

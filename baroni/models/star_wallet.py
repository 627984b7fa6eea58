"""Star wallet (escrow + jackpot) and its movement records."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime
from baroni.core.database import Base


class EscrowMovement(str, enum.Enum):
    DEPOSIT = "deposit"
    RELEASE = "release"
    REFUND = "refund"


class StarWallet(Base):
    __tablename__ = "star_wallets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    star_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    escrow = Column(Integer, nullable=False, default=0)
    jackpot = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StarTransaction(Base):
    __tablename__ = "star_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    star_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    amount = Column(Integer, nullable=False)
    escrow_movement = Column(String, nullable=False, default=EscrowMovement.DEPOSIT.value)
    status = Column(String, nullable=False, default="pending", index=True)  # pending, completed, refunded
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

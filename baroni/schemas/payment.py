"""Pydantic schemas for the payment gateway callback."""

from pydantic import BaseModel
from typing import Optional


class PaymentCallback(BaseModel):
    """Callback body posted by the mobile-money gateway."""
    transaction_id: str
    status: str  # "completed" on success, anything else is a failure
    amount: Optional[int] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status.lower() in ("completed", "success", "successful")


class PaymentCallbackResult(BaseModel):
    processed: bool
    status: str
    appointments: int

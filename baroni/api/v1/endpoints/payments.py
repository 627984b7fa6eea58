"""Payment gateway callback."""

import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.core.config import settings
from baroni.core.database import get_db
from baroni.core.errors import ForbiddenError
from baroni.schemas.payment import PaymentCallback, PaymentCallbackResult
from baroni.services.external_payments import confirm_external_payment

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/callback", response_model=PaymentCallbackResult)
async def payment_callback(
    payload: PaymentCallback,
    x_callback_token: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """Settle or fail a hybrid payment once the gateway reports its outcome."""
    secret = settings.EXTERNAL_PAYMENT_CALLBACK_SECRET
    if secret and not hmac.compare_digest(x_callback_token or "", secret):
        logger.warning("Rejected payment callback for %s: bad token", payload.transaction_id)
        raise ForbiddenError("Invalid callback token")

    return await confirm_external_payment(db, payload.transaction_id, payload.succeeded)

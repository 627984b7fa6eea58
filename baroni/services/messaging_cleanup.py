"""Drop the private conversation between a fan and a star after their call."""

import logging
from uuid import UUID

from sqlalchemy import delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.models.message import Message

logger = logging.getLogger(__name__)


async def delete_conversation_between(db: AsyncSession, user_a: UUID, user_b: UUID) -> int:
    """Delete every message exchanged between two users. Returns rows deleted.

    Errors are logged and swallowed; a failed cleanup never affects the call.
    """
    try:
        result = await db.execute(
            delete(Message).where(
                or_(
                    and_(Message.sender_id == user_a, Message.receiver_id == user_b),
                    and_(Message.sender_id == user_b, Message.receiver_id == user_a),
                )
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Messaging cleanup failed for %s <-> %s", user_a, user_b)
        return 0

    deleted = result.rowcount or 0
    logger.info("Deleted %d messages between %s and %s", deleted, user_a, user_b)
    return deleted

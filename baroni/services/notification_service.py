"""Notification service for booking events.

Notifications are stored rows plus a logged push stub; callers treat
delivery as best effort and never let it fail a booking operation.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from baroni.models.appointment import Appointment
from baroni.models.notification import Notification, NotificationType
from baroni.models.user import User

logger = logging.getLogger(__name__)

# event -> (recipient, title, message template)
APPOINTMENT_EVENTS = {
    "APPOINTMENT_CREATED": ("star", "New appointment request", "You have a new call request for {date} at {time}."),
    "APPOINTMENT_ACCEPTED": ("fan", "Appointment confirmed", "Your call on {date} at {time} has been accepted."),
    "APPOINTMENT_REJECTED": ("fan", "Appointment declined", "Your call request for {date} at {time} was declined. You have been refunded."),
    "APPOINTMENT_CANCELLED": ("star", "Appointment cancelled", "The call on {date} at {time} was cancelled."),
    "APPOINTMENT_RESCHEDULED": ("star", "Appointment rescheduled", "A call was moved to {date} at {time}."),
    "APPOINTMENT_COMPLETED": ("fan", "Call completed", "Your call on {date} at {time} is complete. Thanks for joining!"),
}


async def create_notification(
    db: AsyncSession,
    user_id: UUID,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM,
    appointment_id: Optional[UUID] = None,
    event: Optional[str] = None,
) -> Notification:
    """Store a notification for a user and push it."""
    notification = Notification(
        user_id=user_id,
        appointment_id=appointment_id,
        event=event,
        title=title,
        message=message,
        type=notification_type,
        is_read=False,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    logger.info("Created notification for user %s: %s (%s)", user_id, title, event or notification_type.value)

    await send_fcm_push_stub(user_id, title, message, db)
    return notification


async def send_fcm_push_stub(user_id: UUID, title: str, message: str, db: AsyncSession):
    """Stub for FCM push sending: logs instead of calling Firebase."""
    result = await db.execute(select(User.fcm_token).where(User.id == user_id))
    token = result.scalar_one_or_none()

    if token:
        logger.info("FCM PUSH would be sent to user %s (token: %s...): %s - %s", user_id, token[:20], title, message)
    else:
        logger.debug("FCM PUSH skipped for user %s (no FCM token registered)", user_id)


async def send_appointment_notification(db: AsyncSession, event: str, appointment: Appointment) -> Optional[Notification]:
    """Notify the party an appointment event concerns. Unknown events are ignored."""
    template = APPOINTMENT_EVENTS.get(event)
    if template is None:
        logger.warning("No notification template for event %s", event)
        return None

    recipient, title, body = template
    user_id = appointment.star_id if recipient == "star" else appointment.fan_id
    return await create_notification(
        db,
        user_id=user_id,
        title=title,
        message=body.format(date=appointment.date, time=appointment.time),
        notification_type=NotificationType.APPOINTMENT,
        appointment_id=appointment.id,
        event=event,
    )


async def notify_quietly(db: AsyncSession, event: str, appointment: Appointment) -> None:
    appointment_id = appointment.id
    try:
        await send_appointment_notification(db, event, appointment)
    except Exception:
        await db.rollback()
        logger.exception("Failed to send %s notification for appointment %s", event, appointment_id)

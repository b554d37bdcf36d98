"""
Notification sink: durable, per-user notices about workflow transitions.

Writes are best-effort with respect to the operation that triggers them. A
notice that cannot be composed is logged and dropped; it never aborts the
schedule mutation it describes. Once a notice is committed it is durable.
"""

import datetime as dt
import logging

from shiftswap import database, errors, models
from shiftswap.database import Transaction

logger = logging.getLogger(__name__)


def describe_shift(shift_date: dt.date, shift_slot: models.ShiftSlot) -> str:
    """Human readable shift label, e.g. 'Tuesday, 10 March 2026, Day (08:30-16:30)'."""
    return (
        f"{shift_date:%A}, {shift_date.day} {shift_date:%B %Y}, "
        f"{shift_slot.label} ({shift_slot.value})"
    )


def _compose(
    recipient_id: str,
    title: str,
    body: str,
    category: models.NotificationCategory,
    color: models.NotificationColor,
) -> models.Notification:
    return models.Notification(
        recipient_id=recipient_id,
        title=title,
        body=body,
        category=category,
        color=color,
    )


def notify_in(
    tx: Transaction,
    recipient_id: str,
    title: str,
    body: str,
    category: models.NotificationCategory,
    color: models.NotificationColor = models.NotificationColor.BLUE,
) -> models.Notification | None:
    """
    Stage a notification inside ``tx`` so it commits together with the
    mutation it describes.
    """
    try:
        notification = _compose(recipient_id, title, body, category, color)
    except Exception as e:
        logger.error(
            f"Failed to compose {category.value} notification for user "
            f"{recipient_id}: {e}",
            exc_info=True,
        )
        return None

    tx.set(database.NOTIFICATIONS, notification)
    return notification


async def notify(
    recipient_id: str,
    title: str,
    body: str,
    category: models.NotificationCategory,
    color: models.NotificationColor = models.NotificationColor.BLUE,
) -> models.Notification | None:
    """Deliver a standalone notification. Never raises."""
    try:
        notification = _compose(recipient_id, title, body, category, color)
        await database.store.put(database.NOTIFICATIONS, notification)
    except Exception as e:
        logger.error(
            f"Failed to deliver {category.value} notification to user "
            f"{recipient_id}: {e}",
            exc_info=True,
        )
        return None

    logger.info(f"Notification {notification.id} delivered to user {recipient_id}")
    return notification


async def notifications_for(user_id: str) -> list[models.Notification]:
    """A user's notifications, newest first."""
    return await database.store.query(
        database.NOTIFICATIONS,
        lambda n: n.recipient_id == user_id,
        sort_key=lambda n: n.created_at,
        reverse=True,
    )


def unread_count(notifications: list[models.Notification]) -> int:
    return sum(1 for n in notifications if not n.is_read)


async def mark_read(user_id: str, notification_id: str) -> models.Notification:
    """Mark one notification read. Marking an already-read notice is a no-op."""

    async def _mark(tx: Transaction) -> models.Notification:
        notification = await tx.get(database.NOTIFICATIONS, notification_id)
        if notification is None or notification.recipient_id != user_id:
            raise errors.NotFound("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            tx.set(database.NOTIFICATIONS, notification)
        return notification

    return await database.store.run_transaction(_mark)


async def mark_all_read(user_id: str) -> int:
    """Mark every unread notification of ``user_id`` read; returns how many changed."""

    async def _mark_all(tx: Transaction) -> int:
        unread = await tx.query(
            database.NOTIFICATIONS,
            lambda n: n.recipient_id == user_id and not n.is_read,
        )
        for notification in unread:
            notification.is_read = True
            tx.set(database.NOTIFICATIONS, notification)
        return len(unread)

    return await database.store.run_transaction(_mark_all)


async def delete_notification(user_id: str, notification_id: str) -> None:
    notification = await database.store.get(database.NOTIFICATIONS, notification_id)
    if notification is None or notification.recipient_id != user_id:
        raise errors.NotFound("Notification", notification_id)
    await database.store.delete_many(database.NOTIFICATIONS, [notification_id])


async def delete_all_notifications(user_id: str) -> int:
    notifications = await notifications_for(user_id)
    count = await database.store.delete_many(
        database.NOTIFICATIONS, [n.id for n in notifications]
    )
    logger.info(f"Deleted {count} notifications for user {user_id}")
    return count

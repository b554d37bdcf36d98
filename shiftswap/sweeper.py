"""
On-demand retention sweeps.

Each sweep scans its collection, applies the retention rule and deletes the
matches in one batched write. Deleting by id is idempotent, so sweeps are
safe to repeat or to run concurrently with each other.
"""

import logging
from datetime import datetime, timedelta

from shiftswap import database, models, notifier
from shiftswap.config import settings

logger = logging.getLogger(__name__)


def swap_request_is_stale(swap: models.SwapRequest, now: datetime) -> bool:
    if swap.status == models.SwapStatus.PENDING_USER and swap.expires_at < now:
        return True
    cutoff = now - timedelta(days=settings.swap_retention_days)
    return swap.status.is_terminal and swap.created_at < cutoff


def notification_is_stale(notification: models.Notification, now: datetime) -> bool:
    cutoff = now - timedelta(days=settings.notification_retention_days)
    return (
        notification.category in models.DECISION_NOTIFICATION_CATEGORIES
        and notification.created_at < cutoff
    )


async def cleanup_swap_requests() -> int:
    """Delete expired pending requests and decided requests past retention."""
    now = models.utcnow()
    stale = await database.store.query(
        database.SWAP_REQUESTS, lambda s: swap_request_is_stale(s, now)
    )
    count = await database.store.delete_many(
        database.SWAP_REQUESTS, [s.id for s in stale]
    )
    if count:
        logger.info(f"Cleanup: {count} old swap requests deleted")
    else:
        logger.info("Cleanup: no swap requests to delete")
    return count


async def cleanup_notifications(user_id: str | None = None) -> int:
    """Delete decision notifications past retention, for one user or for everyone."""
    now = models.utcnow()
    stale = await database.store.query(
        database.NOTIFICATIONS,
        lambda n: (user_id is None or n.recipient_id == user_id)
        and notification_is_stale(n, now),
    )
    count = await database.store.delete_many(
        database.NOTIFICATIONS, [n.id for n in stale]
    )
    if count:
        logger.info(f"Cleanup: {count} expired notifications deleted")
    return count


async def last_maintenance() -> datetime | None:
    metadata = await database.store.get(database.SYSTEM, "metadata")
    return metadata.last_maintenance_at if metadata else None


async def maintenance_due() -> bool:
    """True if maintenance never ran or last ran longer ago than the interval."""
    last_run = await last_maintenance()
    if last_run is None:
        return True
    interval = timedelta(days=settings.maintenance_interval_days)
    return models.utcnow() - last_run > interval


async def run_maintenance(admin: models.Actor) -> models.MaintenanceReport:
    """Run every retention sweep and record when it happened."""
    admin.require_admin()

    swap_count = await cleanup_swap_requests()
    notification_count = await cleanup_notifications()

    ran_at = models.utcnow()
    await database.store.put(
        database.SYSTEM,
        models.SystemMetadata(last_maintenance_at=ran_at, updated_at=ran_at),
    )
    report = models.MaintenanceReport(
        swap_requests_deleted=swap_count,
        notifications_deleted=notification_count,
        ran_at=ran_at,
    )
    await notifier.notify(
        admin.id,
        "Maintenance Completed",
        f"Removed {swap_count} swap requests and {notification_count} "
        "notifications.",
        models.NotificationCategory.SYSTEM,
    )
    logger.info(f"Maintenance run by {admin.id}: {report.model_dump()}")
    return report

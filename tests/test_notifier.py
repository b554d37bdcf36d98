"""
Tests for the notification sink.
"""

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from shiftswap import database, errors, models, notifier, schedule, swaps

SYSTEM = models.NotificationCategory.SYSTEM


async def send(user: models.Actor, title: str = "Hello") -> models.Notification:
    notification = await notifier.notify(user.id, title, "Body", SYSTEM)
    assert notification is not None
    return notification


def test_describe_shift() -> None:
    assert (
        notifier.describe_shift(date(2026, 3, 10), models.ShiftSlot.DAY)
        == "Tuesday, 10 March 2026, Day (08:30-16:30)"
    )
    assert (
        notifier.describe_shift(date(2026, 4, 1), models.ShiftSlot.EVENING)
        == "Wednesday, 1 April 2026, Evening (16:30-00:30)"
    )


@pytest.mark.asyncio
async def test_notify_stores_unread_notice(xavier) -> None:
    notification = await send(xavier)

    assert notification.is_read is False
    assert notification.color == models.NotificationColor.BLUE
    stored = await notifier.notifications_for(xavier.id)
    assert stored == [notification]


@pytest.mark.asyncio
async def test_notify_failure_is_swallowed(xavier) -> None:
    with patch("shiftswap.notifier._compose", side_effect=ValueError("bad body")):
        result = await notifier.notify(xavier.id, "Hello", "Body", SYSTEM)

    assert result is None
    assert await database.store.query(database.NOTIFICATIONS) == []


@pytest.mark.asyncio
async def test_notifications_newest_first(xavier, yasmin) -> None:
    with freeze_time("2026-03-01 09:00:00") as frozen:
        first = await send(xavier, "First")
        frozen.tick(timedelta(minutes=1))
        second = await send(xavier, "Second")
        await send(yasmin, "Not yours")

    notifications = await notifier.notifications_for(xavier.id)

    assert [n.id for n in notifications] == [second.id, first.id]


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(xavier, yasmin) -> None:
    notification = await send(xavier)
    collection = database.store.collection(database.NOTIFICATIONS)

    marked = await notifier.mark_read(xavier.id, notification.id)
    version = collection.version(notification.id)
    again = await notifier.mark_read(xavier.id, notification.id)

    assert marked.is_read is True
    assert again.is_read is True
    # The second call writes nothing
    assert collection.version(notification.id) == version

    with pytest.raises(errors.NotFound):
        await notifier.mark_read(yasmin.id, notification.id)
    with pytest.raises(errors.NotFound):
        await notifier.mark_read(xavier.id, "missing")


@pytest.mark.asyncio
async def test_mark_all_read(xavier, yasmin) -> None:
    for _ in range(3):
        await send(xavier)
    await send(yasmin)

    assert await notifier.mark_all_read(xavier.id) == 3
    assert await notifier.mark_all_read(xavier.id) == 0

    assert notifier.unread_count(await notifier.notifications_for(xavier.id)) == 0
    assert notifier.unread_count(await notifier.notifications_for(yasmin.id)) == 1


@pytest.mark.asyncio
async def test_delete_notifications(xavier, yasmin) -> None:
    first = await send(xavier)
    await send(xavier)
    theirs = await send(yasmin)

    with pytest.raises(errors.NotFound):
        await notifier.delete_notification(xavier.id, theirs.id)

    await notifier.delete_notification(xavier.id, first.id)
    assert len(await notifier.notifications_for(xavier.id)) == 1

    assert await notifier.delete_all_notifications(xavier.id) == 1
    assert await notifier.notifications_for(xavier.id) == []
    assert await notifier.notifications_for(yasmin.id) == [theirs]


@pytest.mark.asyncio
async def test_composition_failure_does_not_block_swap(
    sample_data, xavier, yasmin, admin
) -> None:
    """
    Approval still swaps the shifts when its notifications cannot be built.
    """
    swap = await swaps.create_swap_request(
        xavier,
        "a-x-0310-day",
        models.UserRef(id=yasmin.id, name=yasmin.name),
        "a-y-0312-night",
    )
    await swaps.respond_to_swap_request(yasmin, swap.id, accept=True)

    with patch("shiftswap.notifier._compose", side_effect=ValueError("bad body")):
        approved = await swaps.approve_swap_by_admin(admin, swap.id)

    assert approved.status == models.SwapStatus.APPROVED
    assert (await schedule.get_assignment("a-x-0310-day")).user_id == yasmin.id
    assert (await schedule.get_assignment("a-y-0312-night")).user_id == xavier.id
    assert await database.store.query(database.NOTIFICATIONS) == []

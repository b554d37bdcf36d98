"""
Tests for the live views.
"""

from datetime import date, timedelta

import pytest
from freezegun import freeze_time

from shiftswap import models, notifier, projections, schedule, shift_requests, swaps


def ref(actor: models.Actor) -> models.UserRef:
    return models.UserRef(id=actor.id, name=actor.name)


@pytest.mark.asyncio
async def test_schedule_view_updates_on_commit(sample_data, xavier, admin) -> None:
    deliveries = []
    view = projections.assignments_in_range(date(2026, 3, 1), date(2026, 3, 31))

    unsubscribe = await view.subscribe(deliveries.append)

    # Initial delivery
    assert [a.id for a in deliveries[-1]] == [
        "a-x-0310-day",
        "a-p-0312-night",
        "a-y-0312-night",
    ]

    await schedule.create_assignment(
        admin,
        date(2026, 3, 11),
        models.ShiftSlot.EVENING,
        xavier.id,
        xavier.name,
        models.StaffRole.DRIVER,
    )
    assert len(deliveries) == 2
    assert [a.date for a in deliveries[-1]] == [
        date(2026, 3, 10),
        date(2026, 3, 11),
        date(2026, 3, 12),
        date(2026, 3, 12),
    ]

    unsubscribe()
    await schedule.delete_assignment(admin, "a-x-0310-day")
    assert len(deliveries) == 2


@pytest.mark.asyncio
async def test_async_subscriber(xavier) -> None:
    deliveries = []

    async def on_update(items) -> None:
        deliveries.append(len(items))

    await projections.user_notifications(xavier.id).subscribe(on_update)
    await notifier.notify(
        xavier.id, "Hello", "Body", models.NotificationCategory.SYSTEM
    )

    assert deliveries == [0, 1]


@pytest.mark.asyncio
async def test_swap_views_follow_the_workflow(
    sample_data, xavier, yasmin, admin
) -> None:
    incoming = projections.incoming_swap_requests(yasmin.id)
    outgoing = projections.outgoing_swap_requests(xavier.id)
    queue = projections.admin_swap_queue()
    queue_deliveries = []
    await queue.subscribe(queue_deliveries.append)

    swap = await swaps.create_swap_request(
        xavier, "a-x-0310-day", ref(yasmin), "a-y-0312-night"
    )
    assert [s.id for s in await incoming.snapshot()] == [swap.id]
    assert [s.id for s in await outgoing.snapshot()] == [swap.id]
    assert queue_deliveries[-1] == []

    await swaps.respond_to_swap_request(yasmin, swap.id, accept=True)
    assert await incoming.snapshot() == []
    assert [s.id for s in queue_deliveries[-1]] == [swap.id]

    await swaps.approve_swap_by_admin(admin, swap.id)
    assert queue_deliveries[-1] == []
    assert [s.status for s in await outgoing.snapshot()] == [
        models.SwapStatus.APPROVED
    ]


@pytest.mark.asyncio
async def test_incoming_view_drops_expired_requests(sample_data, xavier, yasmin) -> None:
    with freeze_time("2026-03-01 09:00:00") as frozen:
        await swaps.create_swap_request(
            xavier, "a-x-0310-day", ref(yasmin), "a-y-0312-night"
        )
        view = projections.incoming_swap_requests(yasmin.id)
        assert len(await view.snapshot()) == 1

        frozen.tick(timedelta(hours=49))
        assert await view.snapshot() == []


@pytest.mark.asyncio
async def test_shift_request_views(sample_data, zeynep, admin) -> None:
    pending = projections.pending_shift_requests()
    mine = projections.user_shift_requests(zeynep.id)

    request = await shift_requests.create_shift_request(
        zeynep, models.RequestType.PREFERENCE, date(2026, 4, 5)
    )
    assert [r.id for r in await pending.snapshot()] == [request.id]

    await shift_requests.reject_shift_request(admin, request.id)
    assert await pending.snapshot() == []
    assert [r.status for r in await mine.snapshot()] == [models.RequestStatus.REJECTED]

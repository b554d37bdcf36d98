"""
Live views over the store.

A ``LiveQuery`` re-delivers its full, filtered and sorted result set to every
subscriber whenever a commit touches its collection. Views only read; they
never drive mutations.
"""

import datetime as dt
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from shiftswap import database, schedule, shift_requests, swaps

OnUpdate = Callable[[list[Any]], Awaitable[None] | None]


class LiveQuery:
    def __init__(
        self,
        collection: str,
        predicate: Callable[[Any], bool],
        sort_key: Callable[[Any], Any],
        reverse: bool = False,
    ) -> None:
        self.collection = collection
        self.predicate = predicate
        self.sort_key = sort_key
        self.reverse = reverse

    async def snapshot(self) -> list[Any]:
        return await database.store.query(
            self.collection, self.predicate, self.sort_key, self.reverse
        )

    async def subscribe(self, on_update: OnUpdate) -> Callable[[], None]:
        """
        Deliver the current result set now and again after every relevant
        commit. Returns a callable that stops the deliveries.
        """

        async def deliver() -> None:
            result = on_update(await self.snapshot())
            if inspect.isawaitable(result):
                await result

        unsubscribe = database.store.listen(self.collection, deliver)
        await deliver()
        return unsubscribe


def assignments_in_range(start_date: dt.date, end_date: dt.date) -> LiveQuery:
    return LiveQuery(
        database.ASSIGNMENTS,
        schedule.in_range(start_date, end_date),
        sort_key=schedule.schedule_order,
    )


def incoming_swap_requests(user_id: str) -> LiveQuery:
    # The predicate reads the clock on every evaluation, so expired requests
    # drop out of the view without a write.
    return LiveQuery(
        database.SWAP_REQUESTS,
        swaps.is_active_incoming(user_id),
        sort_key=lambda s: s.created_at,
        reverse=True,
    )


def outgoing_swap_requests(user_id: str) -> LiveQuery:
    return LiveQuery(
        database.SWAP_REQUESTS,
        swaps.is_outgoing(user_id),
        sort_key=lambda s: s.created_at,
        reverse=True,
    )


def admin_swap_queue() -> LiveQuery:
    return LiveQuery(
        database.SWAP_REQUESTS,
        swaps.is_awaiting_admin,
        sort_key=lambda s: s.created_at,
        reverse=True,
    )


def pending_shift_requests() -> LiveQuery:
    return LiveQuery(
        database.SHIFT_REQUESTS,
        shift_requests.is_pending,
        sort_key=lambda r: r.created_at,
        reverse=True,
    )


def user_shift_requests(user_id: str) -> LiveQuery:
    return LiveQuery(
        database.SHIFT_REQUESTS,
        shift_requests.is_owned_by(user_id),
        sort_key=lambda r: r.created_at,
        reverse=True,
    )


def user_notifications(user_id: str) -> LiveQuery:
    return LiveQuery(
        database.NOTIFICATIONS,
        lambda n: n.recipient_id == user_id,
        sort_key=lambda n: n.created_at,
        reverse=True,
    )


"""
Swap negotiation engine.

A swap request moves pending_user -> pending_admin -> approved, and may be
rejected from either pending state. A pending_user request past its
``expires_at`` is inert: readers treat it as expired, nothing is written.
Admin ratification swaps the occupants of both assignments, flips the
status and writes one notification per party in a single transaction.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from shiftswap import database, errors, models, notifier, schedule
from shiftswap.config import settings
from shiftswap.database import Transaction

logger = logging.getLogger(__name__)

REJECTION_TITLE = "Swap Request Declined"
REJECTION_BODY = (
    "Your shift swap request could not be approved because it does not fit "
    "the current duty plan."
)
APPROVAL_TITLE = "Shift Swap Approved"


def _newest_first(requests: list[models.SwapRequest]) -> list[models.SwapRequest]:
    return sorted(requests, key=lambda r: r.created_at, reverse=True)


async def _load_request(tx: Transaction, request_id: str) -> models.SwapRequest:
    swap = await tx.get(database.SWAP_REQUESTS, request_id)
    if swap is None:
        raise errors.NotFound("Swap request", request_id)
    return swap


def _transition(
    tx: Transaction, swap: models.SwapRequest, target: models.SwapStatus
) -> models.SwapRequest:
    swap.status = target
    tx.set(database.SWAP_REQUESTS, swap)
    return swap


def _notify_rejection(tx: Transaction, swap: models.SwapRequest) -> None:
    notifier.notify_in(
        tx,
        swap.requester_id,
        REJECTION_TITLE,
        REJECTION_BODY,
        models.NotificationCategory.SWAP_REJECTED,
        models.NotificationColor.RED,
    )


async def create_swap_request(
    requester: models.Actor,
    requester_shift_id: str,
    target: models.UserRef,
    target_shift_id: str,
) -> models.SwapRequest:
    """
    Propose exchanging ``requester_shift_id`` for ``target_shift_id``.

    Both shifts are loaded from the schedule, never taken from the caller.
    They must be held by the requester and the target respectively and
    carry the same staff role. No schedule mutation happens here.
    """
    if requester.id == target.id:
        raise errors.InvalidSwapPair("A shift cannot be swapped with yourself")

    async def _create(tx: Transaction) -> models.SwapRequest:
        requester_shift = await tx.get(database.ASSIGNMENTS, requester_shift_id)
        if requester_shift is None:
            raise errors.AssignmentMissing(requester_shift_id)
        target_shift = await tx.get(database.ASSIGNMENTS, target_shift_id)
        if target_shift is None:
            raise errors.AssignmentMissing(target_shift_id)

        if requester_shift.user_id != requester.id:
            raise errors.Forbidden(
                f"Shift {requester_shift_id} is not held by user {requester.id}"
            )
        if target_shift.user_id != target.id:
            raise errors.InvalidSwapPair(
                f"Shift {target_shift_id} is not held by user {target.id}"
            )
        if requester_shift.staff_role != target_shift.staff_role:
            raise errors.RoleMismatch(
                requester_shift.staff_role.value, target_shift.staff_role.value
            )

        now = models.utcnow()
        swap = models.SwapRequest(
            requester_id=requester.id,
            requester_name=requester.name,
            requester_shift_id=requester_shift.id,
            requester_date=requester_shift.date,
            requester_slot=requester_shift.shift_slot,
            target_user_id=target.id,
            target_user_name=target.name,
            target_shift_id=target_shift.id,
            target_date=target_shift.date,
            target_slot=target_shift.shift_slot,
            status=models.SwapStatus.PENDING_USER,
            expires_at=now + timedelta(hours=settings.swap_expiry_hours),
            created_at=now,
        )
        tx.set(database.SWAP_REQUESTS, swap)
        return swap

    swap = await database.store.run_transaction(_create)
    logger.info(
        f"Swap request {swap.id} created: {requester.id} "
        f"({swap.requester_date} {swap.requester_slot.value}) <-> {target.id} "
        f"({swap.target_date} {swap.target_slot.value})"
    )
    return swap


async def respond_to_swap_request(
    actor: models.Actor, request_id: str, accept: bool
) -> models.SwapRequest:
    """The target user accepts (-> pending_admin) or declines (-> rejected)."""

    async def _respond(tx: Transaction) -> models.SwapRequest:
        swap = await _load_request(tx, request_id)
        if actor.id != swap.target_user_id:
            raise errors.Forbidden(
                f"Only user {swap.target_user_id} may respond to swap request "
                f"{request_id}"
            )
        if swap.status != models.SwapStatus.PENDING_USER:
            raise errors.NotPendingUser(request_id, swap.status.value)
        if swap.is_expired():
            raise errors.SwapRequestExpired(request_id)

        target = (
            models.SwapStatus.PENDING_ADMIN if accept else models.SwapStatus.REJECTED
        )
        swap.responded_at = models.utcnow()
        _transition(tx, swap, target)
        if not accept:
            _notify_rejection(tx, swap)
        return swap

    swap = await database.store.run_transaction(_respond)
    logger.info(
        f"Swap request {request_id} {'accepted' if accept else 'declined'} by "
        f"{actor.id}, status now {swap.status.value}"
    )
    return swap


async def approve_swap_by_admin(
    admin: models.Actor, request_id: str
) -> models.SwapRequest:
    """
    Ratify a peer-accepted swap.

    Inside one transaction: re-check the request is still pending_admin,
    re-read both assignments, re-verify their roles and occupants, swap the
    occupants, mark the request approved and notify both parties. Either
    all of it commits or none of it does. A concurrent approval that lost
    the race re-runs, sees the new status and raises AlreadyProcessed.
    """
    admin.require_admin()

    async def _approve(tx: Transaction) -> models.SwapRequest:
        swap = await _load_request(tx, request_id)
        if not swap.status.can_transition_to(models.SwapStatus.APPROVED):
            raise errors.AlreadyProcessed(request_id, swap.status.value, "approve")

        requester_shift = await tx.get(database.ASSIGNMENTS, swap.requester_shift_id)
        target_shift = await tx.get(database.ASSIGNMENTS, swap.target_shift_id)
        if requester_shift is None:
            raise errors.AssignmentMissing(swap.requester_shift_id)
        if target_shift is None:
            raise errors.AssignmentMissing(swap.target_shift_id)

        if requester_shift.staff_role != target_shift.staff_role:
            raise errors.RoleMismatch(
                requester_shift.staff_role.value, target_shift.staff_role.value
            )
        if requester_shift.user_id != swap.requester_id:
            raise errors.OccupantChanged(requester_shift.id, swap.requester_id)
        if target_shift.user_id != swap.target_user_id:
            raise errors.OccupantChanged(target_shift.id, swap.target_user_id)

        schedule.reassign_occupant(
            tx, requester_shift, swap.target_user_id, swap.target_user_name
        )
        schedule.reassign_occupant(
            tx, target_shift, swap.requester_id, swap.requester_name
        )

        swap.decided_at = models.utcnow()
        _transition(tx, swap, models.SwapStatus.APPROVED)

        notifier.notify_in(
            tx,
            swap.requester_id,
            APPROVAL_TITLE,
            "Your shift swap has been approved. Your new shift: "
            f"{notifier.describe_shift(swap.target_date, swap.target_slot)}.",
            models.NotificationCategory.SWAP_APPROVED,
            models.NotificationColor.GREEN,
        )
        notifier.notify_in(
            tx,
            swap.target_user_id,
            APPROVAL_TITLE,
            "Your shift swap has been approved. Your new shift: "
            f"{notifier.describe_shift(swap.requester_date, swap.requester_slot)}.",
            models.NotificationCategory.SWAP_APPROVED,
            models.NotificationColor.GREEN,
        )
        return swap

    swap = await database.store.run_transaction(_approve)
    logger.info(f"Swap request {request_id} approved by admin {admin.id}")
    return swap


async def reject_swap_by_admin(
    admin: models.Actor, request_id: str
) -> models.SwapRequest:
    admin.require_admin()

    async def _reject(tx: Transaction) -> models.SwapRequest:
        swap = await _load_request(tx, request_id)
        if not swap.status.can_transition_to(models.SwapStatus.REJECTED):
            raise errors.AlreadyProcessed(request_id, swap.status.value, "reject")
        swap.decided_at = models.utcnow()
        _transition(tx, swap, models.SwapStatus.REJECTED)
        _notify_rejection(tx, swap)
        return swap

    swap = await database.store.run_transaction(_reject)
    logger.info(f"Swap request {request_id} rejected by admin {admin.id}")
    return swap


async def get_swap_request(request_id: str) -> models.SwapRequest:
    swap = await database.store.get(database.SWAP_REQUESTS, request_id)
    if swap is None:
        raise errors.NotFound("Swap request", request_id)
    return swap


# --- Read-side filters, shared with the live projections ---


def is_active_incoming(
    user_id: str, now: datetime | None = None
) -> Callable[[models.SwapRequest], bool]:
    """Requests awaiting ``user_id``'s answer that have not expired."""

    def predicate(swap: models.SwapRequest) -> bool:
        return (
            swap.target_user_id == user_id
            and swap.effective_status(now) == models.SwapStatus.PENDING_USER
        )

    return predicate


def is_outgoing(user_id: str) -> Callable[[models.SwapRequest], bool]:
    return lambda swap: swap.requester_id == user_id


def is_awaiting_admin(swap: models.SwapRequest) -> bool:
    return swap.status == models.SwapStatus.PENDING_ADMIN


async def active_incoming_swap_requests(user_id: str) -> list[models.SwapRequest]:
    requests = await database.store.query(
        database.SWAP_REQUESTS, is_active_incoming(user_id)
    )
    return _newest_first(requests)


async def outgoing_swap_requests(user_id: str) -> list[models.SwapRequest]:
    requests = await database.store.query(
        database.SWAP_REQUESTS, is_outgoing(user_id)
    )
    return _newest_first(requests)


async def admin_swap_queue() -> list[models.SwapRequest]:
    requests = await database.store.query(database.SWAP_REQUESTS, is_awaiting_admin)
    return _newest_first(requests)

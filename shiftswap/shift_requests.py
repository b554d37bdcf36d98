"""
Shift-change request engine: add / remove / preference requests decided once
by an administrator.

Approval re-reads the request inside the transaction that flips its status,
so two admins cannot both approve it. The schedule mutation implied by the
request's ``action`` commits in that same transaction:

* ``remove`` deletes the requester's assignment on ``requested_date``; with a
  ``target_date`` it is a move and a new assignment is created there.
* ``add`` creates an assignment on ``requested_date``.
* no action, or a remove without a shift slot: the approval is recorded
  without touching the schedule.

If the assignment to remove no longer exists the approval is still recorded,
but the result reports that the schedule was not changed.
"""

import datetime as dt
import logging
from collections.abc import Callable

from shiftswap import database, errors, models, notifier, schedule
from shiftswap.database import Transaction

logger = logging.getLogger(__name__)


async def _load_pending(
    tx: Transaction, request_id: str, attempted: str
) -> models.ShiftRequest:
    request = await tx.get(database.SHIFT_REQUESTS, request_id)
    if request is None:
        raise errors.NotFound("Shift request", request_id)
    if request.status != models.RequestStatus.PENDING:
        raise errors.RequestAlreadyProcessed(
            request_id, request.status.value, attempted
        )
    return request


def _decide(
    tx: Transaction,
    request: models.ShiftRequest,
    status: models.RequestStatus,
    admin_response: str | None,
) -> models.ShiftRequest:
    request.status = status
    request.admin_response = admin_response
    request.updated_at = models.utcnow()
    tx.set(database.SHIFT_REQUESTS, request)

    approved = status == models.RequestStatus.APPROVED
    body = f"Your {request.type.value} request for {request.requested_date} was " + (
        "approved." if approved else "rejected."
    )
    if admin_response:
        body += f" Response: {admin_response}"
    notifier.notify_in(
        tx,
        request.user_id,
        "Request Approved" if approved else "Request Rejected",
        body,
        models.NotificationCategory.REQUEST_APPROVED
        if approved
        else models.NotificationCategory.REQUEST_REJECTED,
        models.NotificationColor.GREEN if approved else models.NotificationColor.RED,
    )
    return request


async def create_shift_request(
    actor: models.Actor,
    type: models.RequestType,
    requested_date: dt.date,
    message: str = "",
    action: models.RequestAction | None = None,
    shift_slot: models.ShiftSlot | None = None,
    target_date: dt.date | None = None,
    target_user_id: str | None = None,
    target_user_name: str | None = None,
) -> models.ShiftRequest:
    if not actor.id:
        raise errors.MissingField("user_id")
    if not actor.name:
        raise errors.MissingField("user_name")
    if actor.staff_role is None:
        raise errors.MissingField("user_staff_role")
    if requested_date is None:
        raise errors.MissingField("requested_date")
    if action == models.RequestAction.ADD and shift_slot is None:
        raise errors.MissingField("shift_slot")

    request = models.ShiftRequest(
        user_id=actor.id,
        user_name=actor.name,
        user_staff_role=actor.staff_role,
        type=type,
        action=action,
        shift_slot=shift_slot,
        requested_date=requested_date,
        target_date=target_date,
        target_user_id=target_user_id,
        target_user_name=target_user_name,
        message=message,
    )
    await database.store.put(database.SHIFT_REQUESTS, request)
    logger.info(
        f"Shift request {request.id} ({type.value}"
        f"{'/' + action.value if action else ''}) created by {actor.id}"
    )
    return request


async def approve_shift_request(
    admin: models.Actor, request_id: str, admin_response: str | None = None
) -> models.RequestApproval:
    admin.require_admin()

    async def _approve(tx: Transaction) -> models.RequestApproval:
        request = await _load_pending(tx, request_id, "approve")
        mutated = False
        warnings: list[str] = []

        if request.action == models.RequestAction.REMOVE and request.shift_slot:
            assignment = await schedule.find_assignment_in(
                tx, request.user_id, request.requested_date, request.shift_slot
            )
            if assignment is not None:
                tx.delete(database.ASSIGNMENTS, assignment.id)
                if request.target_date:
                    schedule.add_assignment(
                        tx,
                        request.target_date,
                        request.shift_slot,
                        request.user_id,
                        request.user_name,
                        request.user_staff_role,
                    )
                mutated = True
            else:
                warnings.append(
                    f"No {request.shift_slot.value} assignment for "
                    f"{request.user_name} on {request.requested_date}; "
                    "the schedule was not changed"
                )
        elif request.action == models.RequestAction.ADD and request.shift_slot:
            schedule.add_assignment(
                tx,
                request.requested_date,
                request.shift_slot,
                request.user_id,
                request.user_name,
                request.user_staff_role,
            )
            mutated = True

        _decide(tx, request, models.RequestStatus.APPROVED, admin_response)
        return models.RequestApproval(
            request=request, schedule_mutated=mutated, warnings=warnings
        )

    approval = await database.store.run_transaction(_approve)
    for warning in approval.warnings:
        logger.warning(f"Shift request {request_id} approved with warning: {warning}")
    logger.info(
        f"Shift request {request_id} approved by admin {admin.id} "
        f"(schedule mutated: {approval.schedule_mutated})"
    )
    return approval


async def reject_shift_request(
    admin: models.Actor, request_id: str, admin_response: str | None = None
) -> models.ShiftRequest:
    admin.require_admin()

    async def _reject(tx: Transaction) -> models.ShiftRequest:
        request = await _load_pending(tx, request_id, "reject")
        return _decide(tx, request, models.RequestStatus.REJECTED, admin_response)

    request = await database.store.run_transaction(_reject)
    logger.info(f"Shift request {request_id} rejected by admin {admin.id}")
    return request


async def delete_shift_request(actor: models.Actor, request_id: str) -> None:
    request = await database.store.get(database.SHIFT_REQUESTS, request_id)
    if request is None:
        raise errors.NotFound("Shift request", request_id)
    if request.user_id != actor.id and not actor.is_admin:
        raise errors.Forbidden(
            f"User {actor.id} may not delete shift request {request_id}"
        )
    await database.store.delete_many(database.SHIFT_REQUESTS, [request_id])
    logger.info(f"Shift request {request_id} deleted by {actor.id}")


def is_pending(request: models.ShiftRequest) -> bool:
    return request.status == models.RequestStatus.PENDING


def is_owned_by(user_id: str) -> Callable[[models.ShiftRequest], bool]:
    return lambda request: request.user_id == user_id


async def pending_shift_requests() -> list[models.ShiftRequest]:
    return await database.store.query(
        database.SHIFT_REQUESTS,
        is_pending,
        sort_key=lambda r: r.created_at,
        reverse=True,
    )


async def shift_requests_for_user(user_id: str) -> list[models.ShiftRequest]:
    return await database.store.query(
        database.SHIFT_REQUESTS,
        is_owned_by(user_id),
        sort_key=lambda r: r.created_at,
        reverse=True,
    )

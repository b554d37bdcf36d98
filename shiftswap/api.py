import datetime as dt
import logging

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from shiftswap import (
    errors,
    models,
    notifier,
    schedule,
    shift_requests,
    swaps,
    sweeper,
)
from shiftswap.config import settings

router = APIRouter()

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    level = settings.log_level.upper()
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level, logging.INFO),
    )


async def current_actor(
    x_user_id: str = Header(...),
    x_user_name: str = Header(...),
    x_user_role: models.UserRole = Header(models.UserRole.USER),
    x_staff_role: models.StaffRole | None = Header(None),
) -> models.Actor:
    """
    Identity of the caller. Authentication happens upstream; this layer only
    carries the verified identity into every operation.
    """
    return models.Actor(
        id=x_user_id, name=x_user_name, role=x_user_role, staff_role=x_staff_role
    )


async def admin_actor(actor: models.Actor = Depends(current_actor)) -> models.Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return actor


async def handle_workflow_error(
    request: Request, exc: errors.ShiftSwapError
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(
            f"{request.method} {request.url.path} refused "
            f"({type(exc).__name__}): {exc}"
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# --- Schedule ---


@router.get("/schedule")
async def list_assignments(
    start: dt.date, end: dt.date
) -> list[models.ShiftAssignment]:
    return await schedule.query_range(start, end)


@router.get("/schedule/calendar")
async def month_calendar(year: int, month: int) -> list[models.DailyRoster]:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=422, detail="month must be 1-12")
    first = dt.date(year, month, 1)
    last = dt.date(year + month // 12, month % 12 + 1, 1) - dt.timedelta(days=1)
    assignments = await schedule.query_range(first, last)
    return schedule.build_month_calendar(year, month, assignments)


@router.post("/schedule", status_code=201)
async def add_assignment(
    payload: models.AssignmentCreate, admin: models.Actor = Depends(admin_actor)
) -> models.ShiftAssignment:
    return await schedule.create_assignment(
        admin,
        payload.date,
        payload.shift_slot,
        payload.user_id,
        payload.user_name,
        payload.staff_role,
    )


@router.patch("/schedule/{assignment_id}")
async def edit_assignment(
    assignment_id: str,
    payload: models.AssignmentUpdate,
    admin: models.Actor = Depends(admin_actor),
) -> models.ShiftAssignment:
    return await schedule.update_assignment(
        admin, assignment_id, **payload.model_dump(exclude_none=True)
    )


@router.delete("/schedule/{assignment_id}", status_code=204)
async def remove_assignment(
    assignment_id: str, admin: models.Actor = Depends(admin_actor)
) -> None:
    await schedule.delete_assignment(admin, assignment_id)


# --- Swap requests ---


@router.post("/swaps", status_code=201)
async def create_swap(
    payload: models.SwapRequestCreate,
    actor: models.Actor = Depends(current_actor),
) -> models.SwapRequest:
    return await swaps.create_swap_request(
        actor, payload.requester_shift_id, payload.target, payload.target_shift_id
    )


@router.get("/swaps/incoming")
async def incoming_swaps(
    actor: models.Actor = Depends(current_actor),
) -> list[models.SwapRequest]:
    return await swaps.active_incoming_swap_requests(actor.id)


@router.get("/swaps/outgoing")
async def outgoing_swaps(
    actor: models.Actor = Depends(current_actor),
) -> list[models.SwapRequest]:
    return await swaps.outgoing_swap_requests(actor.id)


@router.get("/swaps/pending-admin")
async def swaps_awaiting_admin(
    admin: models.Actor = Depends(admin_actor),
) -> list[models.SwapRequest]:
    return await swaps.admin_swap_queue()


@router.post("/swaps/{request_id}/respond")
async def respond_to_swap(
    request_id: str,
    payload: models.SwapResponse,
    actor: models.Actor = Depends(current_actor),
) -> models.SwapRequest:
    return await swaps.respond_to_swap_request(actor, request_id, payload.accept)


@router.post("/swaps/{request_id}/approve")
async def approve_swap(
    request_id: str, admin: models.Actor = Depends(admin_actor)
) -> models.SwapRequest:
    return await swaps.approve_swap_by_admin(admin, request_id)


@router.post("/swaps/{request_id}/reject")
async def reject_swap(
    request_id: str, admin: models.Actor = Depends(admin_actor)
) -> models.SwapRequest:
    return await swaps.reject_swap_by_admin(admin, request_id)


# --- Shift requests ---


@router.post("/requests", status_code=201)
async def create_request(
    payload: models.ShiftRequestCreate,
    actor: models.Actor = Depends(current_actor),
) -> models.ShiftRequest:
    return await shift_requests.create_shift_request(
        actor,
        payload.type,
        payload.requested_date,
        message=payload.message,
        action=payload.action,
        shift_slot=payload.shift_slot,
        target_date=payload.target_date,
        target_user_id=payload.target_user_id,
        target_user_name=payload.target_user_name,
    )


@router.get("/requests/pending")
async def pending_requests(
    admin: models.Actor = Depends(admin_actor),
) -> list[models.ShiftRequest]:
    return await shift_requests.pending_shift_requests()


@router.get("/requests/mine")
async def my_requests(
    actor: models.Actor = Depends(current_actor),
) -> list[models.ShiftRequest]:
    return await shift_requests.shift_requests_for_user(actor.id)


@router.post("/requests/{request_id}/approve")
async def approve_request(
    request_id: str,
    payload: models.AdminDecision,
    admin: models.Actor = Depends(admin_actor),
) -> models.RequestApproval:
    return await shift_requests.approve_shift_request(
        admin, request_id, payload.admin_response
    )


@router.post("/requests/{request_id}/reject")
async def reject_request(
    request_id: str,
    payload: models.AdminDecision,
    admin: models.Actor = Depends(admin_actor),
) -> models.ShiftRequest:
    return await shift_requests.reject_shift_request(
        admin, request_id, payload.admin_response
    )


@router.delete("/requests/{request_id}", status_code=204)
async def delete_request(
    request_id: str, actor: models.Actor = Depends(current_actor)
) -> None:
    await shift_requests.delete_shift_request(actor, request_id)


# --- Notifications ---


@router.get("/notifications")
async def list_notifications(
    actor: models.Actor = Depends(current_actor),
) -> dict:
    notifications = await notifier.notifications_for(actor.id)
    return {
        "unread": notifier.unread_count(notifications),
        "items": [n.model_dump(mode="json") for n in notifications],
    }


@router.post("/notifications/read-all")
async def read_all_notifications(
    actor: models.Actor = Depends(current_actor),
) -> dict[str, int]:
    return {"updated": await notifier.mark_all_read(actor.id)}


@router.post("/notifications/{notification_id}/read")
async def read_notification(
    notification_id: str, actor: models.Actor = Depends(current_actor)
) -> models.Notification:
    return await notifier.mark_read(actor.id, notification_id)


@router.delete("/notifications/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: str, actor: models.Actor = Depends(current_actor)
) -> None:
    await notifier.delete_notification(actor.id, notification_id)


@router.delete("/notifications")
async def clear_notifications(
    actor: models.Actor = Depends(current_actor),
) -> dict[str, int]:
    return {"deleted": await notifier.delete_all_notifications(actor.id)}


# --- Maintenance ---


@router.get("/maintenance/status")
async def maintenance_status(
    admin: models.Actor = Depends(admin_actor),
) -> dict:
    last_run = await sweeper.last_maintenance()
    return {
        "due": await sweeper.maintenance_due(),
        "last_run": last_run.isoformat() if last_run else None,
    }


@router.post("/maintenance/run")
async def run_maintenance(
    admin: models.Actor = Depends(admin_actor),
) -> models.MaintenanceReport:
    return await sweeper.run_maintenance(admin)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    app.add_exception_handler(errors.ShiftSwapError, handle_workflow_error)
    app.include_router(router)
    return app

"""
Schedule store: shift assignments keyed by (date, slot, occupant).
"""

import calendar
import datetime as dt
import logging
from collections import Counter
from collections.abc import Callable

from shiftswap import database, errors, models
from shiftswap.database import Transaction

logger = logging.getLogger(__name__)

# Minimum head-count per staff role on every shift.
SHIFT_REQUIREMENTS: dict[models.StaffRole, int] = {
    models.StaffRole.HEALTH_WORKER: 2,
    models.StaffRole.DRIVER: 2,
    models.StaffRole.PARAMEDIC: 2,
}

_EDITABLE_FIELDS = {"date", "shift_slot", "user_id", "user_name", "staff_role"}


def schedule_order(assignment: models.ShiftAssignment) -> tuple:
    return (assignment.date, assignment.shift_slot.order, assignment.user_name)


# --- Transactional building blocks ---


def add_assignment(
    tx: Transaction,
    assignment_date: dt.date,
    shift_slot: models.ShiftSlot,
    user_id: str,
    user_name: str,
    staff_role: models.StaffRole,
) -> models.ShiftAssignment:
    """Stage a new assignment; uniqueness is enforced when ``tx`` commits."""
    assignment = models.ShiftAssignment(
        date=assignment_date,
        shift_slot=shift_slot,
        user_id=user_id,
        user_name=user_name,
        staff_role=staff_role,
    )
    tx.set(database.ASSIGNMENTS, assignment)
    return assignment


async def find_assignment_in(
    tx: Transaction,
    user_id: str,
    assignment_date: dt.date,
    shift_slot: models.ShiftSlot,
) -> models.ShiftAssignment | None:
    matches = await tx.query(
        database.ASSIGNMENTS,
        lambda a: a.user_id == user_id
        and a.date == assignment_date
        and a.shift_slot == shift_slot,
    )
    return matches[0] if matches else None


def reassign_occupant(
    tx: Transaction,
    assignment: models.ShiftAssignment,
    new_user_id: str,
    new_user_name: str,
) -> models.ShiftAssignment:
    """
    Hand ``assignment`` to another user. Only meaningful inside a swap
    ratification, where the paired reassignment shares the same ``tx``.
    """
    assignment.user_id = new_user_id
    assignment.user_name = new_user_name
    assignment.updated_at = models.utcnow()
    tx.set(database.ASSIGNMENTS, assignment)
    return assignment


# --- Standalone operations ---


async def create_assignment(
    admin: models.Actor,
    assignment_date: dt.date,
    shift_slot: models.ShiftSlot,
    user_id: str,
    user_name: str,
    staff_role: models.StaffRole,
) -> models.ShiftAssignment:
    """Create an assignment; raises DuplicateAssignment if the user already holds the slot."""
    admin.require_admin()

    async def _create(tx: Transaction) -> models.ShiftAssignment:
        return add_assignment(
            tx, assignment_date, shift_slot, user_id, user_name, staff_role
        )

    assignment = await database.store.run_transaction(_create)
    logger.info(
        f"Assigned {user_name} ({user_id}) to {shift_slot.value} on "
        f"{assignment_date} by admin {admin.id}"
    )
    return assignment


async def get_assignment(assignment_id: str) -> models.ShiftAssignment | None:
    return await database.store.get(database.ASSIGNMENTS, assignment_id)


async def find_assignment(
    user_id: str, assignment_date: dt.date, shift_slot: models.ShiftSlot
) -> models.ShiftAssignment | None:
    matches = await database.store.query(
        database.ASSIGNMENTS,
        lambda a: a.user_id == user_id
        and a.date == assignment_date
        and a.shift_slot == shift_slot,
    )
    return matches[0] if matches else None


async def update_assignment(
    admin: models.Actor, assignment_id: str, **fields
) -> models.ShiftAssignment:
    admin.require_admin()
    unknown = set(fields) - _EDITABLE_FIELDS
    if unknown:
        raise errors.ValidationFailed(
            f"Cannot update assignment fields: {', '.join(sorted(unknown))}"
        )

    async def _update(tx: Transaction) -> models.ShiftAssignment:
        assignment = await tx.get(database.ASSIGNMENTS, assignment_id)
        if assignment is None:
            raise errors.NotFound("Shift assignment", assignment_id)
        # Validate the merged document so raw enum/date values are coerced.
        updated = models.ShiftAssignment.model_validate(
            {**assignment.model_dump(), **fields, "updated_at": models.utcnow()}
        )
        tx.set(database.ASSIGNMENTS, updated)
        return updated

    updated = await database.store.run_transaction(_update)
    logger.info(f"Updated shift assignment {assignment_id} (admin {admin.id})")
    return updated


async def delete_assignment(admin: models.Actor, assignment_id: str) -> None:
    """Delete an assignment; raises NotFound if it is already gone."""
    admin.require_admin()

    async def _delete(tx: Transaction) -> None:
        assignment = await tx.get(database.ASSIGNMENTS, assignment_id)
        if assignment is None:
            raise errors.NotFound("Shift assignment", assignment_id)
        tx.delete(database.ASSIGNMENTS, assignment_id)

    await database.store.run_transaction(_delete)
    logger.info(f"Deleted shift assignment {assignment_id} (admin {admin.id})")


def in_range(
    start_date: dt.date, end_date: dt.date
) -> Callable[[models.ShiftAssignment], bool]:
    """Predicate selecting assignments dated within [start_date, end_date]."""
    return lambda a: start_date <= a.date <= end_date


async def query_range(
    start_date: dt.date, end_date: dt.date
) -> list[models.ShiftAssignment]:
    """Assignments between two dates inclusive, ordered by date ascending."""
    return await database.store.query(
        database.ASSIGNMENTS,
        in_range(start_date, end_date),
        sort_key=schedule_order,
    )


async def assignments_on(assignment_date: dt.date) -> list[models.ShiftAssignment]:
    return await query_range(assignment_date, assignment_date)


# --- Calendar views ---


def build_month_calendar(
    year: int, month: int, assignments: list[models.ShiftAssignment]
) -> list[models.DailyRoster]:
    """One roster per day of the month with assignments placed into their slots."""
    _, days_in_month = calendar.monthrange(year, month)
    rosters: dict[dt.date, models.DailyRoster] = {}
    for day in range(1, days_in_month + 1):
        roster_date = dt.date(year, month, day)
        rosters[roster_date] = models.DailyRoster(
            date=roster_date,
            is_weekend=roster_date.weekday() >= 5,
            slots={slot: [] for slot in models.ShiftSlot},
        )

    for assignment in sorted(assignments, key=schedule_order):
        roster = rosters.get(assignment.date)
        if roster is not None:
            roster.slots[assignment.shift_slot].append(assignment)

    return list(rosters.values())


def check_shift_requirements(
    assignments: list[models.ShiftAssignment],
) -> dict[models.StaffRole, int]:
    """
    Staff roles that are under-filled on a single shift, mapped to how many
    more people are needed. An empty result means the shift is fully staffed.
    """
    counts = Counter(a.staff_role for a in assignments)
    return {
        role: required - counts[role]
        for role, required in SHIFT_REQUIREMENTS.items()
        if counts[role] < required
    }

"""
Error taxonomy for the scheduling workflows.

Each error carries the HTTP status the API layer should answer with.
"""


class ShiftSwapError(Exception):
    """Base class for every error raised by the workflows."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# --- Validation ---


class ValidationFailed(ShiftSwapError):
    status_code = 422


class MissingField(ValidationFailed):
    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}")
        self.field = field


class RoleMismatch(ValidationFailed):
    def __init__(self, requester_role: str, target_role: str) -> None:
        super().__init__(
            f"Shifts cannot be swapped between different staff roles "
            f"({requester_role} != {target_role})"
        )
        self.requester_role = requester_role
        self.target_role = target_role


class InvalidSwapPair(ValidationFailed):
    pass


# --- Conflicts ---


class ConflictError(ShiftSwapError):
    """The precondition changed underneath the caller; re-fetch and decide."""

    status_code = 409


class DuplicateAssignment(ConflictError):
    def __init__(self, key: tuple) -> None:
        assignment_date, shift_slot, user_id = key
        super().__init__(
            f"User {user_id} is already assigned to {shift_slot.value} on "
            f"{assignment_date}"
        )
        self.key = key


class AssignmentMissing(ConflictError):
    def __init__(self, assignment_id: str) -> None:
        super().__init__(f"Shift assignment {assignment_id} no longer exists")
        self.assignment_id = assignment_id


class OccupantChanged(ConflictError):
    def __init__(self, assignment_id: str, expected_user_id: str) -> None:
        super().__init__(
            f"Shift assignment {assignment_id} is no longer held by "
            f"{expected_user_id}"
        )
        self.assignment_id = assignment_id
        self.expected_user_id = expected_user_id


class TransactionConflict(ConflictError):
    pass


class InvalidTransition(ConflictError):
    """A status change was requested from a state that does not allow it."""

    def __init__(self, message: str, current: str, attempted: str) -> None:
        super().__init__(message)
        self.current = current
        self.attempted = attempted


class NotPendingUser(InvalidTransition):
    def __init__(self, request_id: str, current: str) -> None:
        super().__init__(
            f"Swap request {request_id} is not awaiting a response "
            f"(status: {current})",
            current,
            "respond",
        )


class SwapRequestExpired(InvalidTransition):
    def __init__(self, request_id: str) -> None:
        super().__init__(
            f"Swap request {request_id} has expired", "expired", "respond"
        )


class AlreadyProcessed(InvalidTransition):
    def __init__(self, request_id: str, current: str, attempted: str) -> None:
        super().__init__(
            f"Swap request {request_id} has already been processed "
            f"(status: {current})",
            current,
            attempted,
        )


class RequestAlreadyProcessed(InvalidTransition):
    def __init__(self, request_id: str, current: str, attempted: str) -> None:
        super().__init__(
            f"Shift request {request_id} has already been processed "
            f"(status: {current})",
            current,
            attempted,
        )


# --- Lookup / identity ---


class NotFound(ShiftSwapError):
    status_code = 404

    def __init__(self, kind: str, doc_id: str) -> None:
        super().__init__(f"{kind} {doc_id} not found")
        self.kind = kind
        self.doc_id = doc_id


class Forbidden(ShiftSwapError):
    status_code = 403

"""
Domain models for the shift scheduling service.
"""

import datetime as dt
import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from shiftswap import errors


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class ShiftSlot(str, Enum):
    """The three fixed daily shift slots."""

    NIGHT = "00:30-08:30"
    DAY = "08:30-16:30"
    EVENING = "16:30-00:30"

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def order(self) -> int:
        return list(ShiftSlot).index(self)


class StaffRole(str, Enum):
    """Occupational category; swaps are only allowed within one role."""

    HEALTH_WORKER = "health_worker"
    DRIVER = "driver"
    PARAMEDIC = "paramedic"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    USER = "user"


class Actor(BaseModel):
    """The authenticated identity performing an operation."""

    id: str
    name: str
    role: UserRole = UserRole.USER
    staff_role: StaffRole | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    def require_admin(self) -> None:
        if not self.is_admin:
            raise errors.Forbidden(f"User {self.id} is not an administrator")


class UserRef(BaseModel):
    id: str
    name: str


class ShiftAssignment(BaseModel):
    """One user occupying one (date, slot)."""

    id: str = Field(default_factory=new_id)
    date: dt.date
    shift_slot: ShiftSlot
    user_id: str
    user_name: str
    staff_role: StaffRole
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def unique_key(self) -> tuple:
        return (self.date, self.shift_slot, self.user_id)


class SwapStatus(str, Enum):
    """
    Status of a swap request.

    EXPIRED is never stored; it is derived at read time for a PENDING_USER
    request whose acceptance window has passed.
    """

    PENDING_USER = "pending_user"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    def can_transition_to(self, target: "SwapStatus") -> bool:
        return target in _SWAP_TRANSITIONS.get(self, frozenset())

    @property
    def is_terminal(self) -> bool:
        return self in (SwapStatus.APPROVED, SwapStatus.REJECTED)


_SWAP_TRANSITIONS: dict[SwapStatus, frozenset[SwapStatus]] = {
    SwapStatus.PENDING_USER: frozenset(
        {SwapStatus.PENDING_ADMIN, SwapStatus.REJECTED}
    ),
    SwapStatus.PENDING_ADMIN: frozenset({SwapStatus.APPROVED, SwapStatus.REJECTED}),
}


class SwapRequest(BaseModel):
    """A proposed exchange of two specific assignments between two users."""

    id: str = Field(default_factory=new_id)

    requester_id: str
    requester_name: str
    requester_shift_id: str
    requester_date: dt.date
    requester_slot: ShiftSlot

    target_user_id: str
    target_user_name: str
    target_shift_id: str
    target_date: dt.date
    target_slot: ShiftSlot

    status: SwapStatus = SwapStatus.PENDING_USER
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    responded_at: datetime | None = None
    decided_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.status == SwapStatus.PENDING_USER and self.expires_at < now

    def effective_status(self, now: datetime | None = None) -> SwapStatus:
        if self.is_expired(now):
            return SwapStatus.EXPIRED
        return self.status


class RequestType(str, Enum):
    SWAP = "swap"
    LEAVE = "leave"
    PREFERENCE = "preference"


class RequestAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShiftRequest(BaseModel):
    """A user's ask to add, remove, or express a preference about a shift."""

    id: str = Field(default_factory=new_id)
    user_id: str
    user_name: str
    user_staff_role: StaffRole
    type: RequestType
    action: RequestAction | None = None
    shift_slot: ShiftSlot | None = None
    requested_date: dt.date
    target_date: dt.date | None = None
    # Kept for displaying legacy swap-type requests.
    target_user_id: str | None = None
    target_user_name: str | None = None
    message: str = ""
    status: RequestStatus = RequestStatus.PENDING
    admin_response: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None


class NotificationCategory(str, Enum):
    SWAP_APPROVED = "swap_approved"
    SWAP_REJECTED = "swap_rejected"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    SYSTEM = "system"


# Decision notices expire after the retention window; system notices are kept.
DECISION_NOTIFICATION_CATEGORIES = frozenset(
    {
        NotificationCategory.SWAP_APPROVED,
        NotificationCategory.SWAP_REJECTED,
        NotificationCategory.REQUEST_APPROVED,
        NotificationCategory.REQUEST_REJECTED,
    }
)


class NotificationColor(str, Enum):
    GREEN = "green"
    RED = "red"
    BLUE = "blue"


class Notification(BaseModel):
    """A durable, user-scoped notice about a workflow transition."""

    id: str = Field(default_factory=new_id)
    recipient_id: str
    title: str
    body: str
    category: NotificationCategory
    color: NotificationColor = NotificationColor.BLUE
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class SystemMetadata(BaseModel):
    id: str = "metadata"
    last_maintenance_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)


# --- Operation results ---


class RequestApproval(BaseModel):
    """Outcome of approving a shift request."""

    request: ShiftRequest
    schedule_mutated: bool
    warnings: list[str] = Field(default_factory=list)


class MaintenanceReport(BaseModel):
    swap_requests_deleted: int
    notifications_deleted: int
    ran_at: datetime


class DailyRoster(BaseModel):
    date: dt.date
    is_weekend: bool
    slots: dict[ShiftSlot, list[ShiftAssignment]]


# --- Inbound payloads ---


class AssignmentCreate(BaseModel):
    date: dt.date
    shift_slot: ShiftSlot
    user_id: str
    user_name: str
    staff_role: StaffRole


class AssignmentUpdate(BaseModel):
    date: dt.date | None = None
    shift_slot: ShiftSlot | None = None
    user_id: str | None = None
    user_name: str | None = None
    staff_role: StaffRole | None = None


class SwapRequestCreate(BaseModel):
    requester_shift_id: str
    target: UserRef
    target_shift_id: str


class SwapResponse(BaseModel):
    accept: bool


class ShiftRequestCreate(BaseModel):
    type: RequestType
    requested_date: dt.date
    message: str = ""
    action: RequestAction | None = None
    shift_slot: ShiftSlot | None = None
    target_date: dt.date | None = None
    target_user_id: str | None = None
    target_user_name: str | None = None


class AdminDecision(BaseModel):
    admin_response: str | None = None

"""Core models for travel requests, approvals and their audit trail."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UserRole(StrEnum):
    """Roles a user can hold."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"
    DU_HEAD = "du_head"


APPROVER_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.MANAGER, UserRole.DU_HEAD, UserRole.ADMIN}
)


class RequestStatus(StrEnum):
    """Where a travel request sits in the approval pipeline."""

    DRAFT = "draft"
    MANAGER_PENDING = "manager_pending"
    DU_PENDING = "du_pending"
    ADMIN_PENDING = "admin_pending"
    MANAGER_SELECTION = "manager_selection"
    DU_FINAL = "du_final"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


class ApprovalAction(StrEnum):
    """Decision recorded in an Approval row."""

    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"


class AuditAction(StrEnum):
    """Operation recorded in an audit log entry."""

    CREATE = "create"
    EDIT = "edit"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    SELECT_TICKET = "select_ticket"
    CLOSE = "close"
    ADD_TICKET_OPTION = "add_ticket_option"


class NotificationType(StrEnum):
    """Category of a user notification."""

    STATE_CHANGE = "state_change"
    SLA_BREACH = "sla_breach"
    BUDGET_OVERRUN = "budget_overrun"
    GENERAL = "general"


def utc_now() -> datetime:
    return datetime.now(UTC)


class User(BaseModel):
    """A user as seen by the workflow; read-only."""

    id: int = Field(..., description="Unique user identifier")
    name: str = Field(..., description="Display name")
    role: UserRole = Field(..., description="Role driving permission checks")
    department: str = Field(..., description="Department the user belongs to")
    email: str = Field(..., description="Contact email address")
    hierarchy_chain: list[int] = Field(
        default_factory=list,
        description="Ids of the users above this one in the reporting line",
    )
    avatar: str | None = Field(default=None, description="Optional avatar URL")

    model_config = ConfigDict(frozen=True)


class TravelDetails(BaseModel):
    """Trip payload carried along by the workflow."""

    source: str = Field(..., description="Departure city")
    destination: str = Field(..., description="Destination city")
    start_date: date = Field(..., description="First day of travel")
    end_date: date = Field(..., description="Last day of travel")
    purpose: str = Field(..., description="Business purpose of the trip")
    project_code: str | None = Field(default=None, description="Billing project")
    estimated_cost: Annotated[Decimal, Field(ge=0)] | None = Field(
        default=None, description="Estimated total cost"
    )
    additional_notes: str | None = Field(default=None, description="Free-form notes")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _validate_dates(self) -> TravelDetails:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self


class ApprovalStep(BaseModel):
    """Binds one workflow role to the user who must act for it."""

    role: UserRole = Field(..., description="Approver role for this stage")
    user_id: int = Field(..., description="User bound to the role")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _validate_role(self) -> ApprovalStep:
        if self.role not in APPROVER_ROLES:
            msg = f"Role '{self.role}' cannot appear in an approval chain"
            raise ValueError(msg)
        return self


class _ChangesetBase(BaseModel):
    details: str = Field(..., description="Human readable summary of the change")

    model_config = ConfigDict(frozen=True)


class CreateChangeset(_ChangesetBase):
    type: Literal["create"] = "create"


class EditChangeset(_ChangesetBase):
    type: Literal["edit"] = "edit"
    changed_fields: tuple[str, ...] = Field(
        default_factory=tuple, description="Travel detail fields that changed"
    )


class SubmitChangeset(_ChangesetBase):
    type: Literal["submit"] = "submit"


class ApproveChangeset(_ChangesetBase):
    type: Literal["approve"] = "approve"
    comments: str | None = None
    from_status: RequestStatus
    to_status: RequestStatus


class RejectChangeset(_ChangesetBase):
    type: Literal["reject"] = "reject"
    comments: str | None = None
    from_status: RequestStatus


class ReturnChangeset(_ChangesetBase):
    type: Literal["return"] = "return"
    comments: str | None = None
    from_status: RequestStatus
    to_status: RequestStatus
    returned_to: int | None = Field(
        default=None, description="User who must re-review the request"
    )


class SelectTicketChangeset(_ChangesetBase):
    type: Literal["select_ticket"] = "select_ticket"
    ticket_option_id: int


class CloseChangeset(_ChangesetBase):
    type: Literal["close"] = "close"
    comments: str | None = None


Changeset = Annotated[
    CreateChangeset
    | EditChangeset
    | SubmitChangeset
    | ApproveChangeset
    | RejectChangeset
    | ReturnChangeset
    | SelectTicketChangeset
    | CloseChangeset,
    Field(discriminator="type"),
]


class VersionHistoryEntry(BaseModel):
    """Immutable entry in a request's version history."""

    timestamp: datetime = Field(..., description="When the change was applied")
    user_id: int = Field(..., description="User who applied the change")
    changeset: Changeset

    model_config = ConfigDict(frozen=True)


class TravelRequest(BaseModel):
    """A travel request moving through the approval workflow."""

    request_id: int | None = Field(
        default=None, description="Identifier assigned when the request is stored"
    )
    current_status: RequestStatus = Field(
        default=RequestStatus.DRAFT, description="Current workflow status"
    )
    requester_id: int = Field(..., description="User who owns the request")
    travel_details: TravelDetails
    approval_chain: tuple[ApprovalStep, ...] = Field(
        default_factory=tuple,
        description="Role to user bindings fixed at creation time",
    )
    selected_ticket_id: int | None = Field(
        default=None, description="Ticket option chosen during ticket selection"
    )
    version_history: tuple[VersionHistoryEntry, ...] = Field(
        default_factory=tuple,
        description="Append-only log of every change applied to the request",
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _validate_invariants(self) -> TravelRequest:
        roles = [step.role for step in self.approval_chain]
        if len(roles) != len(set(roles)):
            msg = "Approval chain may contain at most one entry per role"
            raise ValueError(msg)
        if self.version_history and self.version_history[0].changeset.type != "create":
            msg = "Version history must start with a create entry"
            raise ValueError(msg)
        return self

    def approver_for(self, role: UserRole) -> int | None:
        """Return the user id bound to ``role`` in the approval chain."""

        for step in self.approval_chain:
            if step.role == role:
                return step.user_id
        return None


class Approval(BaseModel):
    """Immutable record of one approval decision."""

    approval_id: int | None = Field(default=None, description="Assigned on insert")
    request_id: int
    approver_id: int
    action: ApprovalAction
    comments: str | None = None
    ticket_option_id: int | None = None
    decision_date: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


class TicketOption(BaseModel):
    """Candidate itinerary added by an admin."""

    option_id: int | None = Field(default=None, description="Assigned on insert")
    request_id: int
    carrier: str
    travel_class: str = Field(..., alias="class", description="Cabin class")
    price: Annotated[Decimal, Field(ge=0)]
    departure_time: datetime | None = None
    arrival_time: datetime | None = None
    validity_start: datetime
    validity_end: datetime
    refundable: bool = False
    added_by_admin_id: int
    added_date: datetime = Field(default_factory=utc_now)
    carrier_rating: float | None = None
    flight_duration: str | None = None
    stops: int | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _validate_window(self) -> TicketOption:
        if self.validity_end < self.validity_start:
            msg = "validity_end must be on or after validity_start"
            raise ValueError(msg)
        return self


class AuditLogEntry(BaseModel):
    """Immutable compliance record for one workflow operation."""

    log_id: int | None = Field(default=None, description="Assigned on insert")
    request_id: int
    user_id: int
    action_type: AuditAction
    before_state: dict[str, object] = Field(default_factory=dict)
    after_state: dict[str, object] = Field(default_factory=dict)
    ip_address: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


class NotificationMessage(BaseModel):
    """Payload handed to the notification collaborator."""

    user_id: int
    title: str
    message: str
    request_id: int | None = None
    type: NotificationType = NotificationType.STATE_CHANGE

    model_config = ConfigDict(frozen=True)


class Notification(NotificationMessage):
    """A delivered notification as kept in a user's inbox."""

    id: int
    read: bool = False
    created_at: datetime = Field(default_factory=utc_now)


def to_record(model: BaseModel) -> dict[str, object]:
    """Serialize a model into the JSON-compatible shape handed to the store."""

    return model.model_dump(mode="json", by_alias=True)

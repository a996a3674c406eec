"""Status transition table for the travel request workflow.

The table is the single authority on which action moves a request from one
status to the next. Everything else in the package asks it rather than
switching on statuses itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .exceptions import InvalidStateError
from .models import RequestStatus, UserRole


class WorkflowAction(StrEnum):
    """Actions that move a request between statuses."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    SELECT_TICKET = "select_ticket"
    CLOSE = "close"


@dataclass(frozen=True)
class Transition:
    """A single edge in the workflow graph."""

    from_status: RequestStatus
    action: WorkflowAction
    to_status: RequestStatus


# Stage -> role that must act on it.
REQUIRED_ROLES: dict[RequestStatus, UserRole] = {
    RequestStatus.MANAGER_PENDING: UserRole.MANAGER,
    RequestStatus.DU_PENDING: UserRole.DU_HEAD,
    RequestStatus.ADMIN_PENDING: UserRole.ADMIN,
    RequestStatus.MANAGER_SELECTION: UserRole.MANAGER,
    RequestStatus.DU_FINAL: UserRole.DU_HEAD,
}

ACTIONABLE_STATUSES: tuple[RequestStatus, ...] = tuple(REQUIRED_ROLES)

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.REJECTED, RequestStatus.CLOSED}
)

_FORWARD_CHAIN: tuple[tuple[RequestStatus, WorkflowAction, RequestStatus], ...] = (
    (RequestStatus.DRAFT, WorkflowAction.SUBMIT, RequestStatus.MANAGER_PENDING),
    (RequestStatus.MANAGER_PENDING, WorkflowAction.APPROVE, RequestStatus.DU_PENDING),
    (RequestStatus.DU_PENDING, WorkflowAction.APPROVE, RequestStatus.ADMIN_PENDING),
    (
        RequestStatus.ADMIN_PENDING,
        WorkflowAction.APPROVE,
        RequestStatus.MANAGER_SELECTION,
    ),
    (
        RequestStatus.MANAGER_SELECTION,
        WorkflowAction.SELECT_TICKET,
        RequestStatus.DU_FINAL,
    ),
    (RequestStatus.DU_FINAL, WorkflowAction.APPROVE, RequestStatus.APPROVED),
    (RequestStatus.APPROVED, WorkflowAction.CLOSE, RequestStatus.CLOSED),
)

_RETURN_EDGES: tuple[tuple[RequestStatus, RequestStatus], ...] = (
    (RequestStatus.MANAGER_PENDING, RequestStatus.DRAFT),
    (RequestStatus.DU_PENDING, RequestStatus.MANAGER_PENDING),
    (RequestStatus.ADMIN_PENDING, RequestStatus.DU_PENDING),
    (RequestStatus.MANAGER_SELECTION, RequestStatus.ADMIN_PENDING),
    (RequestStatus.DU_FINAL, RequestStatus.MANAGER_SELECTION),
)


def _build_transitions() -> tuple[Transition, ...]:
    edges = [Transition(src, action, dst) for src, action, dst in _FORWARD_CHAIN]
    edges.extend(
        Transition(src, WorkflowAction.RETURN, dst) for src, dst in _RETURN_EDGES
    )
    edges.extend(
        Transition(status, WorkflowAction.REJECT, RequestStatus.REJECTED)
        for status in ACTIONABLE_STATUSES
    )
    return tuple(edges)


TRANSITIONS: tuple[Transition, ...] = _build_transitions()

_TABLE: dict[tuple[RequestStatus, WorkflowAction], RequestStatus] = {
    (edge.from_status, edge.action): edge.to_status for edge in TRANSITIONS
}


def next_status(
    status: RequestStatus,
    action: WorkflowAction,
    *,
    request_id: int | None = None,
) -> RequestStatus:
    """Return the status reached by applying ``action`` to ``status``.

    Raises InvalidStateError when the table has no such edge.
    """

    try:
        return _TABLE[(status, action)]
    except KeyError:
        raise InvalidStateError(status.value, action.value, request_id) from None


def has_transition(status: RequestStatus, action: WorkflowAction) -> bool:
    return (status, action) in _TABLE


def allowed_actions(status: RequestStatus) -> list[WorkflowAction]:
    """Return the actions with an outgoing edge from ``status``, in table order."""

    return [edge.action for edge in TRANSITIONS if edge.from_status == status]


def is_terminal(status: RequestStatus) -> bool:
    """True when no forward progress is possible from ``status``."""

    return status in TERMINAL_STATUSES or status == RequestStatus.APPROVED


def is_reachable(history: list[RequestStatus]) -> bool:
    """Return True when consecutive statuses are all joined by table edges.

    ``history`` starts at the creation status; repeated statuses (edits that
    do not move the request) are allowed.
    """

    if not history or history[0] != RequestStatus.DRAFT:
        return False
    targets = {(edge.from_status, edge.to_status) for edge in TRANSITIONS}
    for previous, current in zip(history, history[1:]):
        if previous == current:
            continue
        if (previous, current) not in targets:
            return False
    return True

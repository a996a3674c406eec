"""Workflow operations for travel requests.

:class:`WorkflowService` is the boundary the UI/API layer calls. Each mutating
operation follows the same shape under a per-request lock:

1. read the request (and acting user) -- ``NotFoundError``
2. look up the transition -- ``InvalidStateError``
3. check the actor -- ``UnauthorizedError``
4. write the updated request, history entry included, in one store call
5. append the Approval row and the audit log entry
6. notify the next party, never failing the operation if delivery fails
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime

from loguru import logger

from .audit import AuditRecorder, append_version, request_snapshot
from .config import WorkflowSettings
from .directory import StoreUserDirectory, UserDirectory
from .exceptions import (
    InvalidApprovalChainError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    Approval,
    ApprovalAction,
    ApprovalStep,
    ApproveChangeset,
    AuditAction,
    AuditLogEntry,
    Changeset,
    CloseChangeset,
    CreateChangeset,
    EditChangeset,
    NotificationMessage,
    RejectChangeset,
    RequestStatus,
    ReturnChangeset,
    SelectTicketChangeset,
    SubmitChangeset,
    TicketOption,
    TravelDetails,
    TravelRequest,
    User,
    UserRole,
    VersionHistoryEntry,
    to_record,
    utc_now,
)
from .notifications import Notifier
from .permissions import PermissionResolver
from .storage import Collection, RecordStore
from .transitions import REQUIRED_ROLES, WorkflowAction, next_status

CHAIN_ORDER: tuple[UserRole, ...] = (UserRole.MANAGER, UserRole.DU_HEAD, UserRole.ADMIN)
TICKET_OPTION_STATUSES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.ADMIN_PENDING, RequestStatus.MANAGER_SELECTION}
)


class RequestLocks:
    """Serializes work per request id.

    A lock lives only while some caller holds or waits on it, so the table
    stays as small as the number of requests currently being worked on.
    """

    def __init__(self) -> None:
        self._locks: dict[int, threading.Lock] = {}
        self._users: dict[int, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, request_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(request_id, threading.Lock())
            self._users[request_id] = self._users.get(request_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[request_id] -= 1
                if not self._users[request_id]:
                    del self._users[request_id]
                    del self._locks[request_id]


class WorkflowService:
    """Drive travel requests through the approval workflow."""

    def __init__(
        self,
        store: RecordStore,
        *,
        directory: UserDirectory | None = None,
        notifier: Notifier | None = None,
        settings: WorkflowSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.directory = directory or StoreUserDirectory(store)
        self.notifier = notifier
        self.settings = settings or WorkflowSettings()
        self.permissions = PermissionResolver(self.settings.authorization_mode)
        self.recorder = AuditRecorder(store, self.settings.audit_failure_policy)
        self._clock = clock or utc_now
        self._locks = RequestLocks()

    # ------------------------------------------------------------------
    # Creation and drafting
    # ------------------------------------------------------------------

    def build_approval_chain(self, requester: User) -> tuple[ApprovalStep, ...]:
        """Resolve one approver per role for ``requester``.

        Users in the requester's hierarchy chain win; otherwise the first user
        holding the role (lowest id) is bound.
        """

        hierarchy = [
            user
            for user in (self.directory.get_user_by_id(uid) for uid in requester.hierarchy_chain)
            if user is not None
        ]
        steps: list[ApprovalStep] = []
        for role in CHAIN_ORDER:
            candidate = next((user for user in hierarchy if user.role == role), None)
            if candidate is None:
                holders = sorted(self.directory.get_users_by_role(role), key=lambda u: u.id)
                candidate = holders[0] if holders else None
            if candidate is None:
                raise InvalidApprovalChainError(role.value)
            steps.append(ApprovalStep(role=role, user_id=candidate.id))
        return tuple(steps)

    def create_request(
        self,
        requester_id: int,
        travel_details: TravelDetails | Mapping[str, object],
        approval_chain: Sequence[ApprovalStep | Mapping[str, object]] | None = None,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Create a draft request owned by ``requester_id``.

        When no approval chain is given one is resolved from the directory.
        Every chain user must exist and hold the role they are bound to, and
        each approver role needs exactly one step.
        """

        requester = self._load_user(requester_id)
        details = TravelDetails.model_validate(travel_details)
        if approval_chain is None:
            chain = self.build_approval_chain(requester)
        else:
            chain = tuple(ApprovalStep.model_validate(step) for step in approval_chain)
            for step in chain:
                bound_user = self._load_user(step.user_id)
                if bound_user.role != step.role:
                    raise InvalidApprovalChainError(
                        step.role.value, bound_user.id, bound_user.role.value
                    )
            bound_roles = {step.role for step in chain}
            for role in CHAIN_ORDER:
                if role not in bound_roles:
                    raise InvalidApprovalChainError(role.value)

        now = self._clock()
        request = TravelRequest(
            requester_id=requester.id,
            travel_details=details,
            approval_chain=chain,
            version_history=(
                VersionHistoryEntry(
                    timestamp=now,
                    user_id=requester.id,
                    changeset=CreateChangeset(details="Initial request creation"),
                ),
            ),
            created_at=now,
            updated_at=now,
        )
        request_id = self.store.insert(Collection.REQUESTS, to_record(request))
        created = request.model_copy(update={"request_id": request_id})
        self.recorder.record_audit(
            request_id=request_id,
            user_id=requester.id,
            action=AuditAction.CREATE,
            before={},
            after=request_snapshot(created),
            timestamp=now,
            ip_address=self._ip(ip_address),
        )
        logger.bind(request_id=request_id, actor_id=requester.id).info("Request created")
        return created

    def edit_request(
        self,
        request_id: int,
        editor_id: int,
        travel_details: TravelDetails | Mapping[str, object],
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Replace the travel details of a draft; only the requester may edit."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            editor = self._load_user(editor_id)
            if request.current_status != RequestStatus.DRAFT:
                raise InvalidStateError(request.current_status.value, "edit", request_id)
            self._authorize(request.requester_id == editor.id, editor, "edit", request)

            details = TravelDetails.model_validate(travel_details)
            changed = tuple(
                name
                for name in TravelDetails.model_fields
                if getattr(request.travel_details, name) != getattr(details, name)
            )
            if not changed:
                return request

            changeset = EditChangeset(
                details=f"Travel details updated by {editor.id}", changed_fields=changed
            )
            return self._apply(
                request,
                editor,
                changeset,
                AuditAction.EDIT,
                target=request.current_status,
                ip_address=ip_address,
                travel_details=details,
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_request(
        self, request_id: int, user_id: int, *, ip_address: str | None = None
    ) -> TravelRequest:
        """Send a draft to its manager; only the requester may submit."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            user = self._load_user(user_id)
            target = next_status(
                request.current_status, WorkflowAction.SUBMIT, request_id=request_id
            )
            self._authorize(self.permissions.can_act(user, request), user, "submit", request)

            updated = self._apply(
                request,
                user,
                SubmitChangeset(details="Request submitted for approval"),
                AuditAction.SUBMIT,
                target=target,
                ip_address=ip_address,
            )
        self._notify(
            self.permissions.next_approver_id(updated),
            "New Request Pending Approval",
            f"Request #{request_id} requires your approval.",
            request_id,
        )
        return updated

    def approve_request(
        self,
        request_id: int,
        approver_id: int,
        comments: str | None = None,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Approve the current stage and advance one step.

        The ticket selection stage has no plain approve edge; it advances
        through :meth:`select_ticket_option`.
        """

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            approver = self._load_user(approver_id)
            target = next_status(
                request.current_status, WorkflowAction.APPROVE, request_id=request_id
            )
            self._authorize(
                self.permissions.can_act(approver, request), approver, "approve", request
            )

            changeset = ApproveChangeset(
                details=f"Request approved by {approver.id}, new status: {target.value}",
                comments=comments,
                from_status=request.current_status,
                to_status=target,
            )
            updated = self._apply(
                request,
                approver,
                changeset,
                AuditAction.APPROVE,
                target=target,
                ip_address=ip_address,
                decision=ApprovalAction.APPROVED,
                comments=comments,
            )

        if target == RequestStatus.APPROVED:
            self._notify(
                updated.requester_id,
                "Travel Request Approved",
                f"Your travel request #{request_id} has been fully approved.",
                request_id,
            )
        else:
            self._notify(
                self.permissions.next_approver_id(updated),
                "Travel Request Pending Your Approval",
                f"Request #{request_id} requires your approval.",
                request_id,
            )
        return updated

    def reject_request(
        self,
        request_id: int,
        approver_id: int,
        comments: str | None = None,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Reject the request outright from any review stage."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            approver = self._load_user(approver_id)
            target = next_status(
                request.current_status, WorkflowAction.REJECT, request_id=request_id
            )
            self._authorize(
                self.permissions.can_act(approver, request), approver, "reject", request
            )

            changeset = RejectChangeset(
                details=f"Request rejected by {approver.id}",
                comments=comments,
                from_status=request.current_status,
            )
            updated = self._apply(
                request,
                approver,
                changeset,
                AuditAction.REJECT,
                target=target,
                ip_address=ip_address,
                decision=ApprovalAction.REJECTED,
                comments=comments,
            )

        reason = f" Reason: {comments}" if comments else ""
        self._notify(
            updated.requester_id,
            "Travel Request Rejected",
            f"Your travel request #{request_id} has been rejected.{reason}",
            request_id,
        )
        return updated

    def return_for_review(
        self,
        request_id: int,
        approver_id: int,
        comments: str | None = None,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Send the request one stage back to whoever must look at it again."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            approver = self._load_user(approver_id)
            target = next_status(
                request.current_status, WorkflowAction.RETURN, request_id=request_id
            )
            self._authorize(
                self.permissions.can_act(approver, request), approver, "return", request
            )

            if target == RequestStatus.DRAFT:
                returned_to: int | None = request.requester_id
            else:
                returned_to = request.approver_for(REQUIRED_ROLES[target])

            changeset = ReturnChangeset(
                details=f"Request returned by {approver.id}, new status: {target.value}",
                comments=comments,
                from_status=request.current_status,
                to_status=target,
                returned_to=returned_to,
            )
            updated = self._apply(
                request,
                approver,
                changeset,
                AuditAction.RETURN,
                target=target,
                ip_address=ip_address,
                decision=ApprovalAction.RETURNED,
                comments=comments,
            )

        note = f" Comments: {comments}" if comments else ""
        self._notify(
            returned_to,
            "Travel Request Returned for Review",
            f"Request #{request_id} has been returned to you for review.{note}",
            request_id,
        )
        return updated

    def select_ticket_option(
        self,
        request_id: int,
        ticket_option_id: int,
        approver_id: int,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Record the manager's ticket choice and move to final sign-off."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            approver = self._load_user(approver_id)
            target = next_status(
                request.current_status, WorkflowAction.SELECT_TICKET, request_id=request_id
            )
            self._authorize(
                self.permissions.can_act(approver, request),
                approver,
                "select a ticket for",
                request,
            )
            option = self._load_ticket_option(ticket_option_id, request_id)

            changeset = SelectTicketChangeset(
                details=f"Ticket option {option.option_id} selected by {approver.id}",
                ticket_option_id=ticket_option_id,
            )
            updated = self._apply(
                request,
                approver,
                changeset,
                AuditAction.SELECT_TICKET,
                target=target,
                ip_address=ip_address,
                decision=ApprovalAction.APPROVED,
                ticket_option_id=ticket_option_id,
                selected_ticket_id=ticket_option_id,
            )

        self._notify(
            self.permissions.next_approver_id(updated),
            "Travel Request Ready for Final Approval",
            f"Request #{request_id} has a selected ticket and is ready for your final approval.",
            request_id,
        )
        return updated

    def close_request(
        self,
        request_id: int,
        admin_id: int,
        comments: str | None = None,
        *,
        ip_address: str | None = None,
    ) -> TravelRequest:
        """Close an approved request; admins only."""

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            admin = self._load_user(admin_id)
            target = next_status(
                request.current_status, WorkflowAction.CLOSE, request_id=request_id
            )
            self._authorize(self.permissions.can_close(admin, request), admin, "close", request)

            updated = self._apply(
                request,
                admin,
                CloseChangeset(details="Request closed by administrator", comments=comments),
                AuditAction.CLOSE,
                target=target,
                ip_address=ip_address,
            )

        self._notify(
            updated.requester_id,
            "Travel Request Closed",
            f"Your travel request #{request_id} has been closed by the administrator.",
            request_id,
        )
        return updated

    def add_ticket_option(
        self,
        request_id: int,
        admin_id: int,
        option: TicketOption | Mapping[str, object],
        *,
        ip_address: str | None = None,
    ) -> TicketOption:
        """Attach a candidate itinerary to a request under admin review.

        Allowed while the request is in ``admin_pending`` or
        ``manager_selection``. The request status does not change.
        """

        with self._locks.hold(request_id):
            request = self._load_request(request_id)
            admin = self._load_user(admin_id)
            if request.current_status not in TICKET_OPTION_STATUSES:
                raise InvalidStateError(
                    request.current_status.value, "add a ticket option to", request_id
                )
            self._authorize(
                self.permissions.can_add_ticket_option(admin, request),
                admin,
                "add a ticket option to",
                request,
            )

            now = self._clock()
            data = to_record(option) if isinstance(option, TicketOption) else dict(option)
            data.update(
                option_id=None,
                request_id=request_id,
                added_by_admin_id=admin.id,
                added_date=now,
            )
            candidate = TicketOption.model_validate(data)
            option_id = self.store.insert(Collection.TICKET_OPTIONS, to_record(candidate))
            stored = candidate.model_copy(update={"option_id": option_id})

            snapshot = request_snapshot(request)
            self.recorder.record_audit(
                request_id=request_id,
                user_id=admin.id,
                action=AuditAction.ADD_TICKET_OPTION,
                before=snapshot,
                after={**snapshot, "ticket_option_id": option_id},
                timestamp=now,
                ip_address=self._ip(ip_address),
            )
        logger.bind(request_id=request_id, actor_id=admin.id).info(
            "Ticket option {} added ({} {})", option_id, stored.carrier, stored.travel_class
        )
        return stored

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_user_act_on_request(self, user_id: int, request_id: int) -> bool:
        """Return whether the user may act on the request now; False for unknown ids."""

        record = self.store.get(Collection.REQUESTS, request_id)
        user = self.directory.get_user_by_id(user_id)
        if record is None or user is None:
            return False
        return self.permissions.can_act(user, TravelRequest.model_validate(record))

    def get_next_approver(self, request_id: int) -> User | None:
        """Return the chain-bound user who must act on the request at its current stage."""

        request = self._load_request(request_id)
        user_id = self.permissions.next_approver_id(request)
        if user_id is None:
            return None
        return self.directory.get_user_by_id(user_id)

    def get_pending_approvals(self, user_id: int) -> list[TravelRequest]:
        """Return requests waiting on ``user_id`` as a reviewer, by request id."""

        user = self._load_user(user_id)
        pending: list[TravelRequest] = []
        for status, role in REQUIRED_ROLES.items():
            if role != user.role:
                continue
            for record in self.store.get_all_by(Collection.REQUESTS, "current_status", status.value):
                request = TravelRequest.model_validate(record)
                if self.permissions.is_pending_for(user, request):
                    pending.append(request)
        return sorted(pending, key=lambda item: item.request_id or 0)

    def get_request_audit_logs(self, request_id: int) -> list[AuditLogEntry]:
        self._load_request(request_id)
        return self.recorder.audit_logs(request_id)

    def get_request(self, request_id: int) -> TravelRequest:
        return self._load_request(request_id)

    def get_user_requests(self, user_id: int) -> list[TravelRequest]:
        """Return every request owned by ``user_id``."""

        records = self.store.get_all_by(Collection.REQUESTS, "requester_id", user_id)
        return [TravelRequest.model_validate(record) for record in records]

    def get_ticket_options(self, request_id: int) -> list[TicketOption]:
        self._load_request(request_id)
        records = self.store.get_all_by(Collection.TICKET_OPTIONS, "request_id", request_id)
        return [TicketOption.model_validate(record) for record in records]

    def get_approvals(self, request_id: int) -> list[Approval]:
        self._load_request(request_id)
        return self.recorder.approvals(request_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        request: TravelRequest,
        actor: User,
        changeset: Changeset,
        audit_action: AuditAction,
        *,
        target: RequestStatus,
        ip_address: str | None,
        decision: ApprovalAction | None = None,
        comments: str | None = None,
        ticket_option_id: int | None = None,
        **changes: object,
    ) -> TravelRequest:
        now = self._clock()
        updated = append_version(
            request,
            user_id=actor.id,
            changeset=changeset,
            timestamp=now,
            current_status=target,
            **changes,
        )
        # The request write is the commit point; nothing is recorded if it fails.
        self.store.update(Collection.REQUESTS, to_record(updated))

        if decision is not None:
            self.recorder.record_approval(
                Approval(
                    request_id=request.request_id,
                    approver_id=actor.id,
                    action=decision,
                    comments=comments,
                    ticket_option_id=ticket_option_id,
                    decision_date=now,
                )
            )
        self.recorder.record_audit(
            request_id=request.request_id,
            user_id=actor.id,
            action=audit_action,
            before=request_snapshot(request),
            after=request_snapshot(updated),
            timestamp=now,
            ip_address=self._ip(ip_address),
        )
        logger.bind(request_id=request.request_id, actor_id=actor.id).info(
            "{}: {} -> {}", audit_action.value, request.current_status.value, target.value
        )
        return updated

    def _authorize(self, allowed: bool, user: User, action: str, request: TravelRequest) -> None:
        if allowed:
            return
        logger.bind(request_id=request.request_id, actor_id=user.id).warning(
            "Denied {} for role {} at status {}", action, user.role.value, request.current_status.value
        )
        raise UnauthorizedError(user.id, action, request.request_id)

    def _load_request(self, request_id: int) -> TravelRequest:
        record = self.store.get(Collection.REQUESTS, request_id)
        if record is None:
            raise NotFoundError("request", request_id)
        return TravelRequest.model_validate(record)

    def _load_user(self, user_id: int) -> User:
        user = self.directory.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    def _load_ticket_option(self, option_id: int, request_id: int) -> TicketOption:
        record = self.store.get(Collection.TICKET_OPTIONS, option_id)
        if record is None:
            raise NotFoundError("ticket option", option_id)
        option = TicketOption.model_validate(record)
        if option.request_id != request_id:
            raise NotFoundError(
                "ticket option", option_id, f"not offered for request {request_id}"
            )
        return option

    def _ip(self, ip_address: str | None) -> str | None:
        return ip_address or self.settings.default_ip_address

    def _notify(
        self, user_id: int | None, title: str, message: str, request_id: int
    ) -> None:
        if self.notifier is None or user_id is None:
            return
        try:
            self.notifier.notify(
                NotificationMessage(
                    user_id=user_id, title=title, message=message, request_id=request_id
                )
            )
        except Exception:
            logger.bind(request_id=request_id, actor_id="-").exception(
                "Notification to user {} failed", user_id
            )

"""Append-only bookkeeping: version history entries and audit log records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from pydantic import BaseModel

from .config import AuditFailurePolicy
from .exceptions import PersistenceError
from .models import (
    Approval,
    ApproveChangeset,
    AuditAction,
    AuditLogEntry,
    Changeset,
    RequestStatus,
    ReturnChangeset,
    TravelRequest,
    VersionHistoryEntry,
    to_record,
)
from .storage import Collection, RecordStore
from .transitions import is_reachable


def request_snapshot(request: TravelRequest) -> dict[str, object]:
    """Capture the workflow-relevant state of a request for the audit log."""

    snapshot: dict[str, object] = {"status": request.current_status.value}
    if request.selected_ticket_id is not None:
        snapshot["selected_ticket_id"] = request.selected_ticket_id
    return snapshot


def append_version(
    request: TravelRequest,
    *,
    user_id: int,
    changeset: Changeset,
    timestamp: datetime,
    **changes: object,
) -> TravelRequest:
    """Return a copy of ``request`` with ``changes`` applied and one history entry appended.

    Past entries are carried over untouched; ``updated_at`` is set to ``timestamp``.
    """

    entry = VersionHistoryEntry(timestamp=timestamp, user_id=user_id, changeset=changeset)
    return request.model_copy(
        update={
            **changes,
            "version_history": (*request.version_history, entry),
            "updated_at": timestamp,
        }
    )


_FIXED_TARGETS: dict[str, RequestStatus] = {
    "create": RequestStatus.DRAFT,
    "submit": RequestStatus.MANAGER_PENDING,
    "reject": RequestStatus.REJECTED,
    "select_ticket": RequestStatus.DU_FINAL,
    "close": RequestStatus.CLOSED,
}


def status_trail(request: TravelRequest) -> list[RequestStatus]:
    """Replay the version history into the sequence of statuses it implies."""

    trail: list[RequestStatus] = []
    for entry in request.version_history:
        changeset = entry.changeset
        if changeset.type in _FIXED_TARGETS:
            trail.append(_FIXED_TARGETS[changeset.type])
        elif isinstance(changeset, ApproveChangeset | ReturnChangeset):
            trail.append(changeset.to_status)
        else:
            # edits leave the status where it was
            trail.append(trail[-1] if trail else RequestStatus.DRAFT)
    return trail


def history_is_consistent(request: TravelRequest) -> bool:
    """True when the history replays along table edges to the current status."""

    trail = status_trail(request)
    return bool(trail) and trail[-1] == request.current_status and is_reachable(trail)


@dataclass
class AuditRecorder:
    """Writes Approval rows and audit log entries to the record store.

    These appends happen after the request itself has been written. With the
    ``log`` failure policy a failed append is logged and the operation still
    succeeds; with ``raise`` the PersistenceError reaches the caller.
    """

    store: RecordStore
    failure_policy: AuditFailurePolicy = AuditFailurePolicy.LOG

    def record_approval(self, approval: Approval) -> int | None:
        return self._append(Collection.APPROVALS, approval)

    def record_audit(
        self,
        *,
        request_id: int,
        user_id: int,
        action: AuditAction,
        before: dict[str, object],
        after: dict[str, object],
        timestamp: datetime,
        ip_address: str | None = None,
    ) -> int | None:
        entry = AuditLogEntry(
            request_id=request_id,
            user_id=user_id,
            action_type=action,
            before_state=before,
            after_state=after,
            ip_address=ip_address,
            timestamp=timestamp,
        )
        return self._append(Collection.AUDIT_LOG, entry)

    def audit_logs(self, request_id: int) -> list[AuditLogEntry]:
        records = self.store.get_all_by(Collection.AUDIT_LOG, "request_id", request_id)
        entries = [AuditLogEntry.model_validate(record) for record in records]
        return sorted(entries, key=lambda entry: (entry.timestamp, entry.log_id or 0))

    def approvals(self, request_id: int) -> list[Approval]:
        records = self.store.get_all_by(Collection.APPROVALS, "request_id", request_id)
        return [Approval.model_validate(record) for record in records]

    def _append(self, collection: Collection, model: BaseModel) -> int | None:
        try:
            return self.store.insert(collection, to_record(model))
        except PersistenceError:
            if self.failure_policy == AuditFailurePolicy.RAISE:
                raise
            logger.exception("Failed to append {} record; continuing", collection.value)
            return None

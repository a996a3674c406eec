"""Travel Request Workflow - multi-stage approval engine for travel requests."""

from .audit import AuditRecorder, history_is_consistent, status_trail
from .config import AuditFailurePolicy, AuthorizationMode, WorkflowSettings
from .directory import StoreUserDirectory, UserDirectory
from .exceptions import (
    ConfigurationError,
    InvalidApprovalChainError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    WorkflowError,
)
from .models import (
    Approval,
    ApprovalAction,
    ApprovalStep,
    AuditAction,
    AuditLogEntry,
    Notification,
    NotificationMessage,
    NotificationType,
    RequestStatus,
    TicketOption,
    TravelDetails,
    TravelRequest,
    User,
    UserRole,
    VersionHistoryEntry,
)
from .notifications import InMemoryNotifier, Notifier
from .permissions import PermissionResolver
from .storage import Collection, InMemoryRecordStore, JsonFileRecordStore, RecordStore
from .transitions import WorkflowAction, allowed_actions, next_status
from .workflow import WorkflowService

__all__ = [
    "Approval",
    "ApprovalAction",
    "ApprovalStep",
    "AuditAction",
    "AuditFailurePolicy",
    "AuditLogEntry",
    "AuditRecorder",
    "AuthorizationMode",
    "Collection",
    "ConfigurationError",
    "InMemoryNotifier",
    "InMemoryRecordStore",
    "InvalidApprovalChainError",
    "InvalidStateError",
    "JsonFileRecordStore",
    "NotFoundError",
    "Notification",
    "NotificationMessage",
    "NotificationType",
    "Notifier",
    "PermissionResolver",
    "PersistenceError",
    "RecordStore",
    "RequestStatus",
    "StoreUserDirectory",
    "TicketOption",
    "TravelDetails",
    "TravelRequest",
    "UnauthorizedError",
    "User",
    "UserDirectory",
    "UserRole",
    "VersionHistoryEntry",
    "WorkflowAction",
    "WorkflowError",
    "WorkflowService",
    "WorkflowSettings",
    "allowed_actions",
    "history_is_consistent",
    "next_status",
    "status_trail",
    "__version__",
]
__version__ = "0.1.0"

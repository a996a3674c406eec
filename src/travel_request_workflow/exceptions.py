"""Typed errors raised by the travel request workflow.

Every error carries a machine-readable ``code`` class attribute and keeps the
identifiers involved as attributes, so callers can branch on the type and
report structured data instead of parsing messages::

    try:
        service.approve_request(request_id, approver_id=user_id)
    except UnauthorizedError as exc:
        return {"error": exc.code, "user_id": exc.user_id}
    except InvalidStateError as exc:
        return {"error": exc.code, "status": exc.status}
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    code: str = "WORKFLOW_ERROR"


class NotFoundError(WorkflowError):
    """A request, user or ticket option id does not resolve."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object, detail: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} {entity_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidStateError(WorkflowError):
    """The requested action has no transition from the current status."""

    code: str = "INVALID_STATE"

    def __init__(self, status: str, action: str, request_id: int | None = None):
        self.status = status
        self.action = action
        self.request_id = request_id
        subject = f"request {request_id}" if request_id is not None else "request"
        super().__init__(f"Cannot {action} {subject} in status '{status}'")


class UnauthorizedError(WorkflowError):
    """The acting user may not perform the action right now."""

    code: str = "UNAUTHORIZED"

    def __init__(self, user_id: int, action: str, request_id: int | None = None):
        self.user_id = user_id
        self.action = action
        self.request_id = request_id
        subject = f"request {request_id}" if request_id is not None else "request"
        super().__init__(f"User {user_id} is not allowed to {action} {subject}")


class InvalidApprovalChainError(WorkflowError):
    """An approval chain cannot be built or binds a user to the wrong role."""

    code: str = "INVALID_APPROVAL_CHAIN"

    def __init__(self, role: str, user_id: int | None = None, actual_role: str | None = None):
        self.role = role
        self.user_id = user_id
        self.actual_role = actual_role
        if user_id is None:
            message = f"No user available for approval chain role '{role}'"
        else:
            message = (
                f"Approval chain binds user {user_id} to role '{role}'"
                f" but the user holds role '{actual_role}'"
            )
        super().__init__(message)


class PersistenceError(WorkflowError):
    """A read or write against the record store failed."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, collection: str, detail: str):
        self.operation = operation
        self.collection = collection
        super().__init__(f"{operation} on '{collection}' failed: {detail}")


class ConfigurationError(WorkflowError):
    """Workflow settings could not be loaded."""

    code: str = "CONFIGURATION_ERROR"

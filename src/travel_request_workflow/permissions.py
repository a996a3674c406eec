"""Decide who may act on a travel request and who acts next."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .config import AuthorizationMode
from .models import RequestStatus, TravelRequest, User, UserRole
from .transitions import REQUIRED_ROLES


def required_role(status: RequestStatus) -> UserRole | None:
    """Return the role that must act on a request in ``status``, if any."""

    return REQUIRED_ROLES.get(status)


@dataclass(frozen=True)
class PermissionResolver:
    """Authorization rules for workflow actions.

    In ``strict`` mode a stage can only be acted on by the user bound to the
    stage's role in the request's approval chain. In ``role`` mode any user
    holding that role may act.
    """

    mode: AuthorizationMode = AuthorizationMode.STRICT

    def can_act(self, user: User, request: TravelRequest) -> bool:
        """Return whether ``user`` may act on ``request`` in its current status."""

        if request.current_status == RequestStatus.DRAFT:
            return request.requester_id == user.id

        role = required_role(request.current_status)
        if role is None:
            return False
        if user.role != role:
            logger.debug(
                "User {} holds role {} but status {} requires {}",
                user.id,
                user.role,
                request.current_status,
                role,
            )
            return False
        if self.mode == AuthorizationMode.ROLE:
            return True
        return request.approver_for(role) == user.id

    def next_approver_id(self, request: TravelRequest) -> int | None:
        """Return the chain-bound user who must act at the request's status.

        Call with the request as it stands after a transition to find the
        person to notify.
        """

        role = required_role(request.current_status)
        if role is None:
            return None
        return request.approver_for(role)

    def can_close(self, user: User, request: TravelRequest) -> bool:
        return user.role == UserRole.ADMIN and request.current_status == RequestStatus.APPROVED

    def can_add_ticket_option(self, user: User, request: TravelRequest) -> bool:
        """Admins add ticket options; strict mode limits this to the chain-bound admin."""

        if user.role != UserRole.ADMIN:
            return False
        if self.mode == AuthorizationMode.ROLE:
            return True
        return request.approver_for(UserRole.ADMIN) == user.id

    def is_pending_for(self, user: User, request: TravelRequest) -> bool:
        """True when the request waits on ``user`` as a reviewer (drafts excluded)."""

        if request.current_status == RequestStatus.DRAFT:
            return False
        return self.can_act(user, request)

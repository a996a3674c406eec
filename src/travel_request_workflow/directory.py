"""User directory collaborator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .models import User, UserRole
from .storage import Collection, RecordStore


class UserDirectory(Protocol):
    """Read-only lookup of users by id or role."""

    def get_user_by_id(self, user_id: int) -> User | None: ...

    def get_users_by_role(self, role: UserRole) -> list[User]: ...


@dataclass
class StoreUserDirectory:
    """User directory reading the ``users`` collection of a record store."""

    store: RecordStore

    def get_user_by_id(self, user_id: int) -> User | None:
        record = self.store.get(Collection.USERS, user_id)
        return User.model_validate(record) if record is not None else None

    def get_users_by_role(self, role: UserRole) -> list[User]:
        return [
            User.model_validate(record)
            for record in self.store.get_all_by(Collection.USERS, "role", role.value)
        ]

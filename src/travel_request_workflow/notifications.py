"""Notification collaborator and an in-memory inbox implementation."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from .exceptions import NotFoundError
from .models import Notification, NotificationMessage


class Notifier(Protocol):
    """Fire-and-forget delivery of notifications to users."""

    def notify(self, message: NotificationMessage) -> None: ...


@dataclass
class InMemoryNotifier:
    """Keeps delivered notifications in per-user inboxes."""

    inboxes: dict[int, list[Notification]] = field(default_factory=dict)
    _next_id: int = field(default=1, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def notify(self, message: NotificationMessage) -> None:
        with self._lock:
            notification = Notification(id=self._next_id, **message.model_dump())
            self._next_id += 1
            self.inboxes.setdefault(message.user_id, []).append(notification)

    def for_user(self, user_id: int) -> list[Notification]:
        """Return every notification delivered to a user, oldest first."""

        return list(self.inboxes.get(user_id, []))

    def unread_for_user(self, user_id: int) -> list[Notification]:
        return [item for item in self.for_user(user_id) if not item.read]

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        """Mark one notification as read and return the updated record."""

        with self._lock:
            inbox = self.inboxes.get(user_id, [])
            for index, item in enumerate(inbox):
                if item.id == notification_id:
                    updated = item.model_copy(update={"read": True})
                    inbox[index] = updated
                    return updated
        raise NotFoundError(
            "notification", notification_id, f"no such notification for user {user_id}"
        )

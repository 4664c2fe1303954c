"""Notification and preference storage.

This module provides storage interfaces and in-memory implementations for
notification records and per-user preferences. The protocol-based design
allows relational or document-store backends with the same semantics.

Stored models are copied on the way in and out so callers can never mutate
store state without going through an update method.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from infrastructure.logging import get_module_logger
from modules.notifications.domain.models import Notification, NotificationPreferences
from modules.notifications.domain.timeutils import utc_now
from modules.notifications.domain.types import NotificationStatus, NotificationType

logger = get_module_logger()


class NotificationStore(Protocol):
    """Storage interface for notification records.

    Implementations must make ``update_if_status`` atomic: the status check
    and the write happen under the same lock or transaction. This is what
    keeps a preference update from overwriting a worker's concurrent status
    flip.
    """

    def save(self, notification: Notification) -> Notification:
        """Insert or replace a notification record."""
        ...

    def get(self, notification_id: str) -> Optional[Notification]:
        """Return the record or None."""
        ...

    def update(
        self, notification_id: str, changes: Dict[str, Any]
    ) -> Optional[Notification]:
        """Apply field changes and bump updated_at. Returns None if missing."""
        ...

    def update_if_status(
        self,
        notification_id: str,
        expected: Iterable[NotificationStatus],
        changes: Dict[str, Any],
    ) -> Optional[Notification]:
        """Apply changes only if the current status is one of ``expected``.

        Returns:
            The updated record, or None when missing or the status differs.
        """
        ...

    def delete(self, notification_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        ...

    def list_for_user(self, user_id: str) -> List[Notification]:
        """Return every record owned by the user, oldest first."""
        ...

    def find_recent_duplicate(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        since: datetime,
    ) -> Optional[Notification]:
        """Return a record with the same (user, type, title) created at or after ``since``."""
        ...

    def delete_expired(self, before: datetime) -> List[str]:
        """Delete every record whose expires_at is before ``before``. Returns ids."""
        ...


class PreferencesStore(Protocol):
    """Storage interface for per-user preferences, keyed by user id."""

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        ...

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, NotificationPreferences]:
        """Return stored preferences for the ids that have them."""
        ...

    def save(self, preferences: NotificationPreferences) -> NotificationPreferences:
        ...

    def delete(self, user_id: str) -> bool:
        ...


class InMemoryNotificationStore:
    """Thread-safe in-memory NotificationStore.

    Suitable for single-instance deployments, development and tests.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Notification] = {}
        self._lock = threading.Lock()

    def save(self, notification: Notification) -> Notification:
        with self._lock:
            self._records[notification.id] = notification.model_copy(deep=True)
            logger.debug(
                "notification_saved",
                notification_id=notification.id,
                user_id=notification.user_id,
                status=notification.status.value,
            )
            return notification.model_copy(deep=True)

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            record = self._records.get(notification_id)
            return record.model_copy(deep=True) if record else None

    def update(
        self, notification_id: str, changes: Dict[str, Any]
    ) -> Optional[Notification]:
        with self._lock:
            return self._apply(notification_id, changes)

    def update_if_status(
        self,
        notification_id: str,
        expected: Iterable[NotificationStatus],
        changes: Dict[str, Any],
    ) -> Optional[Notification]:
        expected_statuses = set(expected)
        with self._lock:
            record = self._records.get(notification_id)
            if record is None:
                return None
            if record.status not in expected_statuses:
                logger.debug(
                    "conditional_update_skipped",
                    notification_id=notification_id,
                    current_status=record.status.value,
                )
                return None
            return self._apply(notification_id, changes)

    def delete(self, notification_id: str) -> bool:
        with self._lock:
            return self._records.pop(notification_id, None) is not None

    def list_for_user(self, user_id: str) -> List[Notification]:
        with self._lock:
            records = [r for r in self._records.values() if r.user_id == user_id]
            records.sort(key=lambda r: r.created_at)
            return [r.model_copy(deep=True) for r in records]

    def find_recent_duplicate(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        since: datetime,
    ) -> Optional[Notification]:
        with self._lock:
            for record in self._records.values():
                if (
                    record.user_id == user_id
                    and record.type == notification_type
                    and record.title == title
                    and record.created_at >= since
                ):
                    return record.model_copy(deep=True)
            return None

    def delete_expired(self, before: datetime) -> List[str]:
        with self._lock:
            expired = [
                record_id
                for record_id, record in self._records.items()
                if record.expires_at is not None and record.expires_at < before
            ]
            for record_id in expired:
                del self._records[record_id]
            return expired

    def _apply(
        self, notification_id: str, changes: Dict[str, Any]
    ) -> Optional[Notification]:
        # Caller holds the lock
        record = self._records.get(notification_id)
        if record is None:
            return None
        updated = record.model_copy(
            update={**changes, "updated_at": utc_now()}, deep=True
        )
        self._records[notification_id] = updated
        return updated.model_copy(deep=True)


class InMemoryPreferencesStore:
    """Thread-safe in-memory PreferencesStore."""

    def __init__(self) -> None:
        self._records: Dict[str, NotificationPreferences] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        with self._lock:
            record = self._records.get(user_id)
            return record.model_copy(deep=True) if record else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, NotificationPreferences]:
        with self._lock:
            return {
                user_id: self._records[user_id].model_copy(deep=True)
                for user_id in user_ids
                if user_id in self._records
            }

    def save(self, preferences: NotificationPreferences) -> NotificationPreferences:
        with self._lock:
            self._records[preferences.user_id] = preferences.model_copy(deep=True)
            return preferences.model_copy(deep=True)

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._records.pop(user_id, None) is not None

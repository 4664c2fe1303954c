"""Notification status lifecycle.

Transitions:
    PENDING   -> SENT, DELIVERED, FAILED
    SENT      -> DELIVERED, READ, FAILED
    DELIVERED -> READ
    READ, FAILED are terminal

Nothing ever returns to PENDING. Worker callbacks that request an invalid
transition are ignored with a warning; user actions that do so raise.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Optional

from infrastructure.logging import get_module_logger
from modules.notifications.domain.errors import (
    NotFoundError,
    ValidationError,
    wrap_storage_errors,
)
from modules.notifications.domain.models import Notification
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import DeliveryChannel, NotificationStatus
from modules.notifications.store import NotificationStore

logger = get_module_logger()

ALLOWED_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset(
        {NotificationStatus.SENT, NotificationStatus.DELIVERED, NotificationStatus.FAILED}
    ),
    NotificationStatus.SENT: frozenset(
        {NotificationStatus.DELIVERED, NotificationStatus.READ, NotificationStatus.FAILED}
    ),
    NotificationStatus.DELIVERED: frozenset({NotificationStatus.READ}),
    NotificationStatus.READ: frozenset(),
    NotificationStatus.FAILED: frozenset(),
}

READABLE_STATUSES = frozenset({NotificationStatus.SENT, NotificationStatus.DELIVERED})


def can_transition(current: NotificationStatus, target: NotificationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _sources_for(target: NotificationStatus) -> FrozenSet[NotificationStatus]:
    return frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets)


class LifecycleTracker:
    """Applies status transitions and removes expired notifications.

    Every transition is a conditional write on the allowed source statuses,
    so a concurrent writer that already moved the record wins.

    Attributes:
        store: NotificationStore holding the records
    """

    def __init__(self, store: NotificationStore) -> None:
        self.store = store

    @wrap_storage_errors("Failed to update notification", "UPDATE_FAILED")
    def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        """Mark one of the user's notifications as read.

        Raises:
            NotFoundError: Missing record or owned by another user
            ValidationError: Record is PENDING or FAILED
        """
        notification = self.get_owned(user_id, notification_id)
        if notification.status == NotificationStatus.READ:
            return notification
        if notification.status not in READABLE_STATUSES:
            raise ValidationError(
                f"Cannot mark a {notification.status.value} notification as read",
                details={"notification_id": notification_id},
            )

        now = utc_now()
        updated = self.store.update_if_status(
            notification_id,
            READABLE_STATUSES,
            {"status": NotificationStatus.READ, "read_at": now},
        )
        if updated is None:
            # Lost a race; report the state that won
            current = self.get_owned(user_id, notification_id)
            if current.status == NotificationStatus.READ:
                return current
            raise ValidationError(
                f"Cannot mark a {current.status.value} notification as read",
                details={"notification_id": notification_id},
            )
        logger.info("notification_read", notification_id=notification_id, user_id=user_id)
        return updated

    @wrap_storage_errors("Failed to update notifications", "UPDATE_FAILED")
    def mark_all_as_read(self, user_id: str) -> int:
        """Mark every SENT or DELIVERED notification of the user as read."""
        now = utc_now()
        count = 0
        for notification in self.store.list_for_user(user_id):
            if notification.status not in READABLE_STATUSES:
                continue
            if self.store.update_if_status(
                notification.id,
                READABLE_STATUSES,
                {"status": NotificationStatus.READ, "read_at": now},
            ):
                count += 1
        logger.info("notifications_marked_read", user_id=user_id, count=count)
        return count

    @wrap_storage_errors("Failed to update notifications", "UPDATE_FAILED")
    def mark_multiple_as_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
        """Mark the given notifications as read, skipping ineligible ids."""
        now = utc_now()
        count = 0
        for notification_id in dict.fromkeys(notification_ids):
            notification = self.store.get(notification_id)
            if notification is None or notification.user_id != user_id:
                continue
            if self.store.update_if_status(
                notification_id,
                READABLE_STATUSES,
                {"status": NotificationStatus.READ, "read_at": now},
            ):
                count += 1
        logger.info("notifications_marked_read", user_id=user_id, count=count)
        return count

    @wrap_storage_errors("Failed to delete notification", "DELETE_FAILED")
    def delete_notification(self, user_id: str, notification_id: str) -> None:
        """Delete one of the user's notifications.

        Raises:
            NotFoundError: Missing record or owned by another user
        """
        self.get_owned(user_id, notification_id)
        self.store.delete(notification_id)
        logger.info("notification_deleted", notification_id=notification_id, user_id=user_id)

    @wrap_storage_errors("Failed to delete notifications", "DELETE_FAILED")
    def delete_multiple(self, user_id: str, notification_ids: Iterable[str]) -> int:
        count = 0
        for notification_id in dict.fromkeys(notification_ids):
            notification = self.store.get(notification_id)
            if notification is None or notification.user_id != user_id:
                continue
            if self.store.delete(notification_id):
                count += 1
        logger.info("notifications_deleted", user_id=user_id, count=count)
        return count

    def mark_as_sent(self, notification_id: str) -> Optional[Notification]:
        return self._transition(notification_id, NotificationStatus.SENT)

    def mark_as_delivered(self, notification_id: str) -> Optional[Notification]:
        """Worker callback after a successful channel delivery."""
        return self._transition(notification_id, NotificationStatus.DELIVERED)

    @wrap_storage_errors("Failed to update notification", "UPDATE_FAILED")
    def mark_as_failed(
        self,
        notification_id: str,
        channel: DeliveryChannel,
        reason: str,
    ) -> Optional[Notification]:
        """Worker callback after a channel exhausted its attempts.

        The failing channel and reason are always recorded in the payload.
        The status only moves to FAILED from PENDING or SENT; a notification
        already delivered on another channel keeps its status.
        """
        notification = self.store.get(notification_id)
        if notification is None:
            logger.warning("failed_notification_missing", notification_id=notification_id)
            return None

        failure = {
            "error": reason,
            "failed_channel": channel.value,
            "failed_at": utc_now().isoformat(),
        }
        data = {**notification.data, **failure}

        updated = self.store.update_if_status(
            notification_id,
            _sources_for(NotificationStatus.FAILED),
            {"status": NotificationStatus.FAILED, "data": data},
        )
        if updated is None:
            current = self.store.get(notification_id)
            if current is None:
                return None
            updated = self.store.update(
                notification_id, {"data": {**current.data, **failure}}
            )
            logger.warning(
                "channel_failure_recorded",
                notification_id=notification_id,
                channel=channel.value,
                status=current.status.value,
                reason=reason,
            )
            return updated

        logger.error(
            "notification_failed",
            notification_id=notification_id,
            channel=channel.value,
            reason=reason,
        )
        return updated

    @wrap_storage_errors("Failed to clean up expired notifications", "CLEANUP_FAILED")
    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every notification whose expires_at has passed."""
        removed = self.store.delete_expired(as_utc(now or utc_now()))
        if removed:
            logger.info("expired_notifications_cleaned", count=len(removed))
        return len(removed)

    @wrap_storage_errors("Failed to update notification", "UPDATE_FAILED")
    def _transition(
        self, notification_id: str, target: NotificationStatus
    ) -> Optional[Notification]:
        updated = self.store.update_if_status(
            notification_id, _sources_for(target), {"status": target}
        )
        if updated is None:
            current = self.store.get(notification_id)
            if current is not None and current.status == target:
                return current
            logger.warning(
                "status_transition_ignored",
                notification_id=notification_id,
                target=target.value,
                current=current.status.value if current else None,
            )
            return None
        logger.debug(
            "status_transition", notification_id=notification_id, status=target.value
        )
        return updated

    @wrap_storage_errors("Failed to fetch notification", "FETCH_FAILED")
    def get_owned(self, user_id: str, notification_id: str) -> Notification:
        notification = self.store.get(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(
                "Notification not found",
                details={"notification_id": notification_id},
            )
        return notification

"""Read side: filtered listings, unread counts and per-user statistics."""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from modules.notifications.constants import JOB_PRIORITY
from modules.notifications.domain.errors import ValidationError, wrap_storage_errors
from modules.notifications.domain.models import (
    Notification,
    NotificationFilters,
    NotificationPage,
    NotificationStats,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import SortField, SortOrder
from modules.notifications.store import NotificationStore


def _sort_key(sort_by: SortField):
    if sort_by == SortField.PRIORITY:
        return lambda n: (JOB_PRIORITY[n.priority], n.created_at)
    if sort_by == SortField.TYPE:
        return lambda n: (n.type.value, n.created_at)
    return lambda n: n.created_at


class NotificationQueries:
    """Read-only views over a user's notifications.

    Attributes:
        store: NotificationStore to read from
        default_page_size: Page size when filters omit a limit
        max_page_size: Upper bound applied to any requested limit
    """

    def __init__(
        self,
        store: NotificationStore,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ) -> None:
        self.store = store
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @wrap_storage_errors("Failed to fetch notifications", "FETCH_FAILED")
    def get_notifications(
        self,
        user_id: str,
        filters: Union[NotificationFilters, Dict[str, Any], None] = None,
        now: Optional[datetime] = None,
    ) -> NotificationPage:
        """List the user's notifications.

        Expired records are hidden unless ``include_expired`` is set.
        ``total`` counts every match before pagination; ``unread_count``
        counts the user's unread, unexpired records regardless of filters.
        """
        filters = self._parse_filters(filters)
        now = as_utc(now or utc_now())
        records = self.store.list_for_user(user_id)

        matches = [n for n in records if self._matches(n, filters, now)]
        matches.sort(
            key=_sort_key(filters.sort_by),
            reverse=filters.sort_order == SortOrder.DESC,
        )

        limit = min(filters.limit or self.default_page_size, self.max_page_size)
        page = matches[filters.offset : filters.offset + limit]

        return NotificationPage(
            items=page,
            total=len(matches),
            unread_count=self._unread(records, now),
            limit=limit,
            offset=filters.offset,
        )

    @wrap_storage_errors("Failed to count notifications", "FETCH_FAILED")
    def get_unread_count(self, user_id: str, now: Optional[datetime] = None) -> int:
        return self._unread(self.store.list_for_user(user_id), as_utc(now or utc_now()))

    @wrap_storage_errors("Failed to compute notification stats", "FETCH_FAILED")
    def get_notification_stats(
        self, user_id: str, now: Optional[datetime] = None
    ) -> NotificationStats:
        """Count the user's unexpired notifications by type, priority and channel."""
        now = as_utc(now or utc_now())
        records = [
            n for n in self.store.list_for_user(user_id) if not n.is_expired(now)
        ]
        by_channel: Counter = Counter()
        for notification in records:
            by_channel.update(c.value for c in notification.channels)

        return NotificationStats(
            total=len(records),
            unread=sum(1 for n in records if not n.is_read),
            by_type=dict(Counter(n.type.value for n in records)),
            by_priority=dict(Counter(n.priority.value for n in records)),
            by_channel=dict(by_channel),
        )

    @staticmethod
    def _unread(records: List[Notification], now: datetime) -> int:
        return sum(1 for n in records if not n.is_read and not n.is_expired(now))

    @staticmethod
    def _matches(
        notification: Notification, filters: NotificationFilters, now: datetime
    ) -> bool:
        if not filters.include_expired and notification.is_expired(now):
            return False
        if filters.types and notification.type not in filters.types:
            return False
        if filters.statuses and notification.status not in filters.statuses:
            return False
        if filters.priorities and notification.priority not in filters.priorities:
            return False
        if filters.unread_only and notification.is_read:
            return False
        if filters.date_from and notification.created_at < filters.date_from:
            return False
        if filters.date_to and notification.created_at > filters.date_to:
            return False
        return True

    @staticmethod
    def _parse_filters(
        filters: Union[NotificationFilters, Dict[str, Any], None],
    ) -> NotificationFilters:
        if filters is None:
            return NotificationFilters()
        if isinstance(filters, NotificationFilters):
            return filters
        try:
            return NotificationFilters.model_validate(filters)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid filters") from exc

"""Unit tests for NotificationQueries."""

from datetime import datetime, timedelta, timezone

import pytest

from modules.notifications.domain.errors import ValidationError
from modules.notifications.domain.types import (
    DeliveryChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from modules.notifications.queries import NotificationQueries

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def queries(notification_store):
    return NotificationQueries(notification_store, default_page_size=20, max_page_size=100)


@pytest.fixture
def inbox(notification_store, notification_factory):
    """Five notifications for user-1 created one minute apart, oldest first."""
    specs = [
        (NotificationType.CHAT_MESSAGE, NotificationPriority.LOW, NotificationStatus.READ),
        (NotificationType.BOOKING_REMINDER, NotificationPriority.HIGH, NotificationStatus.DELIVERED),
        (NotificationType.CHAT_MESSAGE, NotificationPriority.NORMAL, NotificationStatus.SENT),
        (NotificationType.PAYMENT_FAILED, NotificationPriority.CRITICAL, NotificationStatus.PENDING),
        (NotificationType.PROMOTIONAL, NotificationPriority.LOW, NotificationStatus.SENT),
    ]
    saved = []
    for index, (notification_type, priority, status) in enumerate(specs):
        created_at = NOW - timedelta(minutes=len(specs) - index)
        saved.append(
            notification_store.save(
                notification_factory(
                    type=notification_type,
                    priority=priority,
                    status=status,
                    created_at=created_at,
                    updated_at=created_at,
                    title=f"Notification {index}",
                )
            )
        )
    notification_store.save(notification_factory(user_id="user-2"))
    return saved


@pytest.mark.unit
class TestGetNotifications:
    def test_newest_first_by_default(self, queries, inbox):
        page = queries.get_notifications("user-1", now=NOW)

        assert [n.id for n in page.items] == [n.id for n in reversed(inbox)]
        assert page.total == 5
        assert page.unread_count == 4
        assert page.limit == 20
        assert page.offset == 0

    def test_filter_by_type(self, queries, inbox):
        page = queries.get_notifications(
            "user-1", {"types": ["CHAT_MESSAGE"]}, now=NOW
        )

        assert page.total == 2
        assert all(n.type == NotificationType.CHAT_MESSAGE for n in page.items)

    def test_filter_by_status_and_priority(self, queries, inbox):
        page = queries.get_notifications(
            "user-1", {"statuses": ["SENT"], "priorities": ["LOW"]}, now=NOW
        )

        assert [n.id for n in page.items] == [inbox[4].id]

    def test_unread_only(self, queries, inbox):
        page = queries.get_notifications("user-1", {"unread_only": True}, now=NOW)

        assert inbox[0].id not in [n.id for n in page.items]
        assert page.total == 4

    def test_date_range(self, queries, inbox):
        page = queries.get_notifications(
            "user-1",
            {
                "date_from": NOW - timedelta(minutes=4),
                "date_to": NOW - timedelta(minutes=2),
            },
            now=NOW,
        )

        assert [n.id for n in page.items] == [inbox[3].id, inbox[2].id, inbox[1].id]

    def test_pagination_keeps_total(self, queries, inbox):
        page = queries.get_notifications(
            "user-1", {"limit": 2, "offset": 1, "sort_order": "asc"}, now=NOW
        )

        assert [n.id for n in page.items] == [inbox[1].id, inbox[2].id]
        assert page.total == 5

    def test_limit_capped(self, queries, inbox):
        page = queries.get_notifications("user-1", {"limit": 500}, now=NOW)

        assert page.limit == 100

    def test_sort_by_priority(self, queries, inbox):
        page = queries.get_notifications(
            "user-1", {"sort_by": "priority", "sort_order": "desc"}, now=NOW
        )

        assert page.items[0].priority == NotificationPriority.CRITICAL
        assert page.items[-1].priority == NotificationPriority.LOW

    def test_expired_hidden_unless_requested(
        self, queries, notification_store, notification_factory
    ):
        expired = notification_store.save(
            notification_factory(
                status=NotificationStatus.SENT,
                expires_at=NOW - timedelta(seconds=1),
            )
        )

        hidden = queries.get_notifications("user-1", now=NOW)
        shown = queries.get_notifications("user-1", {"include_expired": True}, now=NOW)

        assert hidden.total == 0
        assert hidden.unread_count == 0
        assert [n.id for n in shown.items] == [expired.id]

    def test_invalid_filters_rejected(self, queries):
        with pytest.raises(ValidationError):
            queries.get_notifications("user-1", {"colour": "red"})

    def test_other_users_excluded(self, queries, inbox):
        page = queries.get_notifications("user-2", now=NOW)

        assert page.total == 1


@pytest.mark.unit
class TestCounts:
    def test_unread_count(self, queries, inbox):
        assert queries.get_unread_count("user-1", now=NOW) == 4

    def test_stats(self, queries, inbox):
        stats = queries.get_notification_stats("user-1", now=NOW)

        assert stats.total == 5
        assert stats.unread == 4
        assert stats.by_type["CHAT_MESSAGE"] == 2
        assert stats.by_priority["LOW"] == 2
        assert stats.by_channel[DeliveryChannel.PUSH.value] == 5

"""Unit tests for LifecycleTracker.

Tests cover:
- Read transitions and ownership checks
- Worker callbacks (delivered, failed)
- Bulk operations
- Expired record cleanup
"""

from datetime import datetime, timedelta, timezone

import pytest

from modules.notifications.domain.errors import NotFoundError, ValidationError
from modules.notifications.domain.types import DeliveryChannel, NotificationStatus
from modules.notifications.lifecycle import ALLOWED_TRANSITIONS, can_transition

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def saved(notification_store, notification_factory):
    def _save(**overrides):
        return notification_store.save(notification_factory(**overrides))

    return _save


@pytest.mark.unit
class TestTransitionTable:
    def test_nothing_returns_to_pending(self):
        for targets in ALLOWED_TRANSITIONS.values():
            assert NotificationStatus.PENDING not in targets

    def test_terminal_statuses(self):
        assert ALLOWED_TRANSITIONS[NotificationStatus.READ] == frozenset()
        assert ALLOWED_TRANSITIONS[NotificationStatus.FAILED] == frozenset()

    def test_can_transition(self):
        assert can_transition(NotificationStatus.SENT, NotificationStatus.READ)
        assert not can_transition(NotificationStatus.PENDING, NotificationStatus.READ)


@pytest.mark.unit
class TestMarkAsRead:
    def test_delivered_becomes_read(self, lifecycle, saved):
        notification = saved(status=NotificationStatus.DELIVERED)

        read = lifecycle.mark_as_read("user-1", notification.id)

        assert read.status == NotificationStatus.READ
        assert read.read_at is not None

    def test_read_is_idempotent(self, lifecycle, saved):
        notification = saved(status=NotificationStatus.SENT)
        first = lifecycle.mark_as_read("user-1", notification.id)

        second = lifecycle.mark_as_read("user-1", notification.id)

        assert second.status == NotificationStatus.READ
        assert second.read_at == first.read_at

    def test_pending_cannot_be_read(self, lifecycle, saved):
        notification = saved(status=NotificationStatus.PENDING)

        with pytest.raises(ValidationError):
            lifecycle.mark_as_read("user-1", notification.id)

    def test_other_users_notification_not_found(self, lifecycle, saved):
        notification = saved(status=NotificationStatus.SENT)

        with pytest.raises(NotFoundError) as exc_info:
            lifecycle.mark_as_read("user-2", notification.id)

        assert exc_info.value.status_code == 404

    def test_missing_notification_not_found(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.mark_as_read("user-1", "missing")

    def test_mark_all_as_read_counts_eligible(self, lifecycle, saved):
        saved(status=NotificationStatus.SENT)
        saved(status=NotificationStatus.DELIVERED)
        saved(status=NotificationStatus.PENDING)
        saved(status=NotificationStatus.READ)
        saved(status=NotificationStatus.SENT, user_id="user-2")

        assert lifecycle.mark_all_as_read("user-1") == 2

    def test_mark_multiple_skips_foreign_and_missing(self, lifecycle, saved):
        own = saved(status=NotificationStatus.SENT)
        foreign = saved(status=NotificationStatus.SENT, user_id="user-2")

        count = lifecycle.mark_multiple_as_read(
            "user-1", [own.id, foreign.id, "missing", own.id]
        )

        assert count == 1


@pytest.mark.unit
class TestDelete:
    def test_delete_own_notification(self, lifecycle, saved, notification_store):
        notification = saved()

        lifecycle.delete_notification("user-1", notification.id)

        assert notification_store.get(notification.id) is None

    def test_delete_foreign_notification_not_found(self, lifecycle, saved):
        notification = saved(user_id="user-2")

        with pytest.raises(NotFoundError):
            lifecycle.delete_notification("user-1", notification.id)

    def test_delete_multiple(self, lifecycle, saved):
        first = saved()
        second = saved()
        foreign = saved(user_id="user-2")

        assert lifecycle.delete_multiple("user-1", [first.id, second.id, foreign.id]) == 2


@pytest.mark.unit
class TestWorkerCallbacks:
    def test_mark_as_delivered_from_pending(self, lifecycle, saved):
        notification = saved()

        delivered = lifecycle.mark_as_delivered(notification.id)

        assert delivered.status == NotificationStatus.DELIVERED

    def test_mark_as_delivered_twice_is_no_op(self, lifecycle, saved):
        notification = saved()
        lifecycle.mark_as_delivered(notification.id)

        again = lifecycle.mark_as_delivered(notification.id)

        assert again.status == NotificationStatus.DELIVERED

    def test_invalid_transition_ignored(self, lifecycle, saved):
        notification = saved(status=NotificationStatus.READ)

        assert lifecycle.mark_as_delivered(notification.id) is None

    def test_mark_as_failed_records_reason(self, lifecycle, saved):
        notification = saved()

        failed = lifecycle.mark_as_failed(
            notification.id, DeliveryChannel.PUSH, "gateway down"
        )

        assert failed.status == NotificationStatus.FAILED
        assert failed.data["error"] == "gateway down"
        assert failed.data["failed_channel"] == "PUSH"
        assert "failed_at" in failed.data

    def test_failure_after_delivery_keeps_status(self, lifecycle, saved):
        notification = saved()
        lifecycle.mark_as_delivered(notification.id)

        updated = lifecycle.mark_as_failed(
            notification.id, DeliveryChannel.PUSH, "gateway down"
        )

        assert updated.status == NotificationStatus.DELIVERED
        assert updated.data["failed_channel"] == "PUSH"

    def test_failure_for_missing_notification(self, lifecycle):
        assert lifecycle.mark_as_failed("missing", DeliveryChannel.SMS, "x") is None


@pytest.mark.unit
class TestCleanupExpired:
    def test_removes_only_expired(self, lifecycle, saved, notification_store):
        expired = saved(expires_at=NOW - timedelta(minutes=1))
        live = saved(expires_at=NOW + timedelta(hours=1))
        forever = saved()

        assert lifecycle.cleanup_expired(NOW) == 1
        assert notification_store.get(expired.id) is None
        assert notification_store.get(live.id) is not None
        assert notification_store.get(forever.id) is not None

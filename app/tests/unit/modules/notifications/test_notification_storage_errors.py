"""Tests for wrapping unexpected storage failures in NotificationError."""

from unittest.mock import MagicMock

import pytest

from modules.notifications.directory import DirectoryUser, InMemoryUserDirectory
from modules.notifications.domain.errors import (
    NotFoundError,
    NotificationError,
    ValidationError,
    wrap_storage_errors,
)
from modules.notifications.domain.types import NotificationStatus
from modules.notifications.service import NotificationService

NOTIFICATION_STORE_METHODS = (
    "save",
    "get",
    "update",
    "update_if_status",
    "delete",
    "list_for_user",
    "find_recent_duplicate",
    "delete_expired",
)
PREFERENCES_STORE_METHODS = ("get", "get_many", "save", "delete")


def failing_store(methods):
    store = MagicMock()
    for name in methods:
        getattr(store, name).side_effect = RuntimeError("db down")
    return store


@pytest.fixture
def broken_notification_store():
    return failing_store(NOTIFICATION_STORE_METHODS)


@pytest.fixture
def broken_preferences_store():
    return failing_store(PREFERENCES_STORE_METHODS)


@pytest.mark.unit
class TestWrapStorageErrors:
    def test_unexpected_exception_wrapped_with_code(self):
        @wrap_storage_errors("Failed to load", "LOAD_FAILED")
        def load():
            raise RuntimeError("db down")

        with pytest.raises(NotificationError) as exc_info:
            load()

        assert exc_info.value.code == "LOAD_FAILED"
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to load"
        assert exc_info.value.details == {"operation": "load", "cause": "db down"}
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_domain_errors_pass_through(self):
        @wrap_storage_errors("Failed to load", "LOAD_FAILED")
        def load():
            raise NotFoundError("Notification not found")

        with pytest.raises(NotFoundError):
            load()

    def test_return_value_and_name_preserved(self):
        @wrap_storage_errors("Failed to load", "LOAD_FAILED")
        def load(value):
            return value * 2

        assert load(21) == 42
        assert load.__name__ == "load"


@pytest.mark.unit
class TestServiceStorageFailures:
    def test_create_notification_raises_creation_failed(
        self, settings, broken_notification_store, request_data
    ):
        service = NotificationService(
            settings, notification_store=broken_notification_store
        )

        with pytest.raises(NotificationError) as exc_info:
            service.create_notification(request_data())

        assert exc_info.value.code == "CREATION_FAILED"
        assert not isinstance(exc_info.value, ValidationError)

    def test_invalid_request_still_raises_validation_error(
        self, settings, broken_notification_store, request_data
    ):
        service = NotificationService(
            settings, notification_store=broken_notification_store
        )

        with pytest.raises(ValidationError):
            service.create_notification(request_data(channels=[]))

    def test_read_side_raises_fetch_failed(self, settings, broken_notification_store):
        service = NotificationService(
            settings, notification_store=broken_notification_store
        )

        with pytest.raises(NotificationError) as exc_info:
            service.get_notifications("user-1")

        assert exc_info.value.code == "FETCH_FAILED"

    def test_mark_as_read_raises_update_failed(self, settings, notification_factory):
        notification = notification_factory(status=NotificationStatus.DELIVERED)
        store = MagicMock()
        store.get.return_value = notification
        store.update_if_status.side_effect = RuntimeError("db down")
        service = NotificationService(settings, notification_store=store)

        with pytest.raises(NotificationError) as exc_info:
            service.mark_as_read(notification.user_id, notification.id)

        assert exc_info.value.code == "UPDATE_FAILED"

    def test_cleanup_raises_cleanup_failed(self, settings, broken_notification_store):
        service = NotificationService(
            settings, notification_store=broken_notification_store
        )

        with pytest.raises(NotificationError) as exc_info:
            service.cleanup_expired_notifications()

        assert exc_info.value.code == "CLEANUP_FAILED"

    def test_preferences_failure_wrapped(self, settings, broken_preferences_store):
        service = NotificationService(
            settings, preferences_store=broken_preferences_store
        )

        with pytest.raises(NotificationError) as exc_info:
            service.get_preferences("user-1")

        assert exc_info.value.code == "PREFERENCES_FETCH_FAILED"

    def test_broadcast_counts_storage_failures_per_recipient(
        self, settings, broken_notification_store
    ):
        directory = InMemoryUserDirectory([DirectoryUser("u1"), DirectoryUser("u2")])
        service = NotificationService(
            settings,
            notification_store=broken_notification_store,
            directory=directory,
        )

        result = service.send_broadcast(
            {
                "type": "SYSTEM_ANNOUNCEMENT",
                "title": "Maintenance",
                "content": "Back soon",
                "channels": ["IN_APP"],
            },
            {"all": True},
        )

        assert (result.sent, result.suppressed, result.failed) == (0, 0, 2)
        assert all(
            detail.error == "Failed to create notification" for detail in result.details
        )

"""Test fixtures for the notifications module."""

from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from modules.notifications.constants import QUEUE_NAMES
from modules.notifications.domain.models import (
    CreateNotificationRequest,
    Notification,
)
from modules.notifications.domain.types import (
    DeliveryChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from modules.notifications.factory import NotificationFactory
from modules.notifications.lifecycle import LifecycleTracker
from modules.notifications.preferences import PreferenceResolver
from modules.notifications.queue.broker import InMemoryQueueBroker
from modules.notifications.queue.models import Job
from modules.notifications.store import (
    InMemoryNotificationStore,
    InMemoryPreferencesStore,
)

# Monday, noon UTC
FROZEN_NOW = "2024-01-15 12:00:00"
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def preferences_store():
    return InMemoryPreferencesStore()


@pytest.fixture
def resolver(preferences_store):
    return PreferenceResolver(preferences_store)


@pytest.fixture
def factory(notification_store, resolver):
    return NotificationFactory(notification_store, resolver)


@pytest.fixture
def lifecycle(notification_store):
    return LifecycleTracker(notification_store)


@pytest.fixture
def broker():
    return InMemoryQueueBroker(QUEUE_NAMES.values())


@pytest.fixture
def request_data():
    """Factory for raw create-notification payloads.

    Example:
        payload = request_data(channels=["PUSH"], priority="CRITICAL")
    """

    def _factory(**overrides: Any) -> Dict[str, Any]:
        payload = {
            "user_id": "user-1",
            "type": "BOOKING_CONFIRMATION",
            "title": "Booking confirmed",
            "content": "Your booking for Friday is confirmed",
            "channels": ["IN_APP", "EMAIL", "PUSH"],
        }
        payload.update(overrides)
        return payload

    return _factory


@pytest.fixture
def request_factory(request_data):
    def _factory(**overrides: Any) -> CreateNotificationRequest:
        return CreateNotificationRequest.model_validate(request_data(**overrides))

    return _factory


@pytest.fixture
def notification_factory():
    """Factory for Notification records, not persisted.

    Example:
        notification = notification_factory(status=NotificationStatus.SENT)
    """

    def _factory(**overrides: Any) -> Notification:
        fields: Dict[str, Any] = {
            "user_id": "user-1",
            "type": NotificationType.CHAT_MESSAGE,
            "title": "New message",
            "content": "Hello there",
            "channels": [DeliveryChannel.IN_APP, DeliveryChannel.PUSH],
            "priority": NotificationPriority.NORMAL,
            "status": NotificationStatus.PENDING,
            "created_at": NOW,
            "updated_at": NOW,
        }
        fields.update(overrides)
        fields.setdefault(
            "data",
            {"original_channels": [c.value for c in fields["channels"]]},
        )
        return Notification(**fields)

    return _factory


@pytest.fixture
def job_factory():
    def _factory(**overrides: Any) -> Job:
        fields: Dict[str, Any] = {
            "channel": DeliveryChannel.PUSH,
            "user_id": "user-1",
            "notification_type": NotificationType.CHAT_MESSAGE,
            "notification_ids": ["n-1"],
            "priority": 5,
            "payload": {"title": "New message", "content": "Hello there"},
            "created_at": NOW,
            "available_at": NOW,
        }
        fields.update(overrides)
        return Job(**fields)

    return _factory

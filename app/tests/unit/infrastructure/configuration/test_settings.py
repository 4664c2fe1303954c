"""Unit tests for infrastructure.configuration settings.

Tests cover:
- QueueSettings defaults and environment overrides
- NotificationsFeatureSettings defaults and validation
- Settings aggregation and provider caching
"""

import pytest
from pydantic import ValidationError

from infrastructure.configuration import (
    NotificationsFeatureSettings,
    QueueSettings,
    Settings,
)
from infrastructure.configuration.base import FeatureSettings, InfrastructureSettings
from infrastructure.services.providers import get_settings


@pytest.mark.unit
class TestQueueSettings:
    """Test suite for QueueSettings configuration."""

    def test_queue_settings_defaults(self):
        queue = QueueSettings()

        assert queue.max_attempts == 3
        assert queue.backoff_delay_seconds == 2
        assert queue.worker_concurrency == 10
        assert queue.rate_limit_window_seconds == 60
        assert queue.rate_limit_push == 10
        assert queue.rate_limit_email == 5
        assert queue.rate_limit_sms == 3
        assert queue.rate_limit_in_app == 50
        assert queue.clean_grace_hours == 24
        assert queue.keep_completed == 100
        assert queue.keep_failed == 50

    def test_queue_settings_env_overrides(self, monkeypatch):
        monkeypatch.setenv("QUEUE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("QUEUE_RATE_LIMIT_SMS", "1")
        monkeypatch.setenv("QUEUE_POLL_INTERVAL_SECONDS", "0.25")

        queue = QueueSettings()

        assert queue.max_attempts == 5
        assert queue.rate_limit_sms == 1
        assert queue.poll_interval_seconds == 0.25
        # Defaults preserved
        assert queue.rate_limit_push == 10

    def test_queue_settings_keyword_aliases(self):
        queue = QueueSettings(QUEUE_WORKER_CONCURRENCY=2)

        assert queue.worker_concurrency == 2

    def test_inherits_infrastructure_base(self):
        assert issubclass(QueueSettings, InfrastructureSettings)


@pytest.mark.unit
class TestNotificationsFeatureSettings:
    """Test suite for NotificationsFeatureSettings configuration."""

    def test_defaults(self):
        notifications = NotificationsFeatureSettings()

        assert notifications.duplicate_window_seconds == 300
        assert notifications.max_title_length == 200
        assert notifications.max_content_length == 2000
        assert notifications.default_ttl_hours == 24
        assert notifications.daily_digest_hour == 9
        assert notifications.default_page_size == 20
        assert notifications.max_page_size == 100

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_DUPLICATE_WINDOW_SECONDS", "60")

        assert NotificationsFeatureSettings().duplicate_window_seconds == 60

    def test_invalid_digest_hour_rejected(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_DAILY_DIGEST_HOUR", "24")

        with pytest.raises(ValidationError):
            NotificationsFeatureSettings()

    def test_inherits_feature_base(self):
        assert issubclass(NotificationsFeatureSettings, FeatureSettings)


@pytest.mark.unit
class TestSettings:
    """Test suite for the Settings aggregator."""

    def test_settings_builds_sections(self):
        settings = Settings()

        assert isinstance(settings.notifications, NotificationsFeatureSettings)
        assert isinstance(settings.queue, QueueSettings)

    def test_settings_accepts_section_overrides(self):
        queue = QueueSettings(QUEUE_MAX_ATTEMPTS=1)

        settings = Settings(queue=queue)

        assert settings.queue.max_attempts == 1

    def test_is_production_when_prefix_empty(self, monkeypatch):
        monkeypatch.setenv("PREFIX", "")

        assert Settings().is_production is True

    def test_is_not_production_with_prefix(self, monkeypatch):
        monkeypatch.setenv("PREFIX", "dev-")

        assert Settings().is_production is False

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()

        assert get_settings() is get_settings()

        get_settings.cache_clear()

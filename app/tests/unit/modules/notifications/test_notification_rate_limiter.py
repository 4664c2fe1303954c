"""Unit tests for SlidingWindowRateLimiter and QueueConfig."""

from datetime import datetime, timedelta, timezone

import pytest

from infrastructure.configuration import QueueSettings
from modules.notifications.domain.types import DeliveryChannel
from modules.notifications.queue.config import QueueConfig
from modules.notifications.queue.rate_limiter import SlidingWindowRateLimiter

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
PUSH = DeliveryChannel.PUSH
SMS = DeliveryChannel.SMS


@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter({PUSH: 10, SMS: 3}, window_seconds=60)


@pytest.mark.unit
class TestSlidingWindowRateLimiter:
    def test_eleventh_push_in_window_rejected(self, limiter):
        accepted = [
            limiter.try_acquire("user-1", PUSH, NOW + timedelta(seconds=i))
            for i in range(11)
        ]

        assert accepted.count(True) == 10
        assert accepted[-1] is False

    def test_window_slides(self, limiter):
        for i in range(3):
            assert limiter.try_acquire("user-1", SMS, NOW + timedelta(seconds=i))
        assert not limiter.try_acquire("user-1", SMS, NOW + timedelta(seconds=30))

        # The first event leaves the window after 60 seconds
        assert limiter.try_acquire("user-1", SMS, NOW + timedelta(seconds=60))
        assert not limiter.try_acquire("user-1", SMS, NOW + timedelta(seconds=60))

    def test_limits_are_per_user_and_channel(self, limiter):
        for _ in range(3):
            limiter.try_acquire("user-1", SMS, NOW)

        assert limiter.try_acquire("user-2", SMS, NOW)
        assert limiter.try_acquire("user-1", PUSH, NOW)

    def test_unlisted_channel_unlimited(self, limiter):
        for _ in range(100):
            assert limiter.try_acquire("user-1", DeliveryChannel.IN_APP, NOW)
        assert limiter.remaining("user-1", DeliveryChannel.IN_APP, NOW) is None

    def test_release_returns_slot(self, limiter):
        for _ in range(3):
            limiter.try_acquire("user-1", SMS, NOW)

        limiter.release("user-1", SMS)

        assert limiter.remaining("user-1", SMS, NOW) == 1

    def test_expired_keys_are_forgotten(self, limiter):
        for i in range(50):
            limiter.try_acquire(f"user-{i}", SMS, NOW)

        later = NOW + timedelta(seconds=61)
        for i in range(50):
            assert limiter.remaining(f"user-{i}", SMS, later) == 3

        assert limiter._events == {}
        assert limiter.try_acquire("user-1", SMS, later)
        assert limiter.remaining("user-1", SMS, later) == 2

    def test_remaining_does_not_create_keys(self, limiter):
        assert limiter.remaining("user-9", PUSH, NOW) == 10

        assert limiter._events == {}

    def test_release_of_last_slot_forgets_key(self, limiter):
        limiter.try_acquire("user-1", SMS, NOW)

        limiter.release("user-1", SMS)
        limiter.release("user-1", SMS)

        assert limiter._events == {}
        assert limiter.remaining("user-1", SMS, NOW) == 3

    def test_acquire_channels_splits_accepted_and_dropped(self, limiter):
        for _ in range(3):
            limiter.try_acquire("user-1", SMS, NOW)

        accepted, dropped = limiter.acquire_channels("user-1", [PUSH, SMS], NOW)

        assert accepted == [PUSH]
        assert dropped == [SMS]

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.try_acquire("user-1", SMS, NOW)

        limiter.reset()

        assert limiter.remaining("user-1", SMS, NOW) == 3


@pytest.mark.unit
class TestQueueConfig:
    def test_defaults(self):
        config = QueueConfig()

        assert config.max_attempts == 3
        assert config.backoff_delay_seconds == 2
        assert config.rate_limits[PUSH] == 10
        assert config.rate_limits[DeliveryChannel.EMAIL] == 5
        assert config.rate_limits[SMS] == 3
        assert config.rate_limits[DeliveryChannel.IN_APP] == 50

    def test_from_settings(self):
        settings = QueueSettings(
            QUEUE_MAX_ATTEMPTS=5, QUEUE_RATE_LIMIT_SMS=1, QUEUE_CLEAN_GRACE_HOURS=2
        )

        config = QueueConfig.from_settings(settings)

        assert config.max_attempts == 5
        assert config.rate_limits[SMS] == 1
        assert config.clean_grace_seconds == 7200

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"backoff_delay_seconds": -1},
            {"concurrency": 0},
            {"rate_limit_window_seconds": 0},
            {"rate_limits": {PUSH: -1}},
            {"keep_failed": -1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            QueueConfig(**kwargs)

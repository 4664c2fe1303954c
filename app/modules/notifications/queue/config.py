"""Delivery queue configuration.

This module defines configuration for queue, worker and rate-limit behavior.
"""

from dataclasses import dataclass, field
from typing import Dict

from infrastructure.configuration import QueueSettings
from modules.notifications.domain.types import DeliveryChannel


def _default_rate_limits() -> Dict[DeliveryChannel, int]:
    return {
        DeliveryChannel.PUSH: 10,
        DeliveryChannel.EMAIL: 5,
        DeliveryChannel.SMS: 3,
        DeliveryChannel.IN_APP: 50,
    }


@dataclass
class QueueConfig:
    """Configuration for delivery queues.

    Attributes:
        max_attempts: Delivery attempts per job
        backoff_delay_seconds: Base delay of the exponential backoff
        concurrency: Maximum in-flight jobs per channel worker
        rate_limit_window_seconds: Trailing window for per-user rate limits
        rate_limits: Jobs per user per window, by channel
        clean_grace_seconds: Finished jobs older than this are cleaned
        keep_completed: Completed jobs retained per queue
        keep_failed: Failed jobs retained per queue
        poll_interval_seconds: Idle sleep for background workers

    Example:
        # Defaults
        config = QueueConfig()

        # From environment-backed settings
        config = QueueConfig.from_settings(get_settings().queue)
    """

    max_attempts: int = 3
    backoff_delay_seconds: int = 2
    concurrency: int = 10
    rate_limit_window_seconds: int = 60
    rate_limits: Dict[DeliveryChannel, int] = field(default_factory=_default_rate_limits)
    clean_grace_seconds: int = 24 * 3600
    keep_completed: int = 100
    keep_failed: int = 50
    poll_interval_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_delay_seconds < 0:
            raise ValueError("backoff_delay_seconds must be >= 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.rate_limit_window_seconds < 1:
            raise ValueError("rate_limit_window_seconds must be at least 1")
        if any(limit < 0 for limit in self.rate_limits.values()):
            raise ValueError("rate limits must be >= 0")
        if self.keep_completed < 0 or self.keep_failed < 0:
            raise ValueError("retention counts must be >= 0")

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "QueueConfig":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_delay_seconds=settings.backoff_delay_seconds,
            concurrency=settings.worker_concurrency,
            rate_limit_window_seconds=settings.rate_limit_window_seconds,
            rate_limits={
                DeliveryChannel.PUSH: settings.rate_limit_push,
                DeliveryChannel.EMAIL: settings.rate_limit_email,
                DeliveryChannel.SMS: settings.rate_limit_sms,
                DeliveryChannel.IN_APP: settings.rate_limit_in_app,
            },
            clean_grace_seconds=settings.clean_grace_hours * 3600,
            keep_completed=settings.keep_completed,
            keep_failed=settings.keep_failed,
            poll_interval_seconds=settings.poll_interval_seconds,
        )

"""Delivery queue infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class QueueSettings(InfrastructureSettings):
    """Delivery queue configuration for per-channel job processing.

    Environment Variables:
        QUEUE_MAX_ATTEMPTS: Delivery attempts per job before it fails (default: 3)
        QUEUE_BACKOFF_DELAY_SECONDS: Base exponential backoff delay (default: 2s)
        QUEUE_WORKER_CONCURRENCY: In-flight jobs per channel worker (default: 10)
        QUEUE_RATE_LIMIT_WINDOW_SECONDS: Trailing rate-limit window (default: 60s)
        QUEUE_RATE_LIMIT_PUSH: Push jobs per user per window (default: 10)
        QUEUE_RATE_LIMIT_EMAIL: Email jobs per user per window (default: 5)
        QUEUE_RATE_LIMIT_SMS: SMS jobs per user per window (default: 3)
        QUEUE_RATE_LIMIT_IN_APP: In-app jobs per user per window (default: 50)
        QUEUE_CLEAN_GRACE_HOURS: Age before finished jobs are cleaned (default: 24h)
        QUEUE_KEEP_COMPLETED: Completed jobs retained per queue (default: 100)
        QUEUE_KEEP_FAILED: Failed jobs retained per queue (default: 50)
        QUEUE_POLL_INTERVAL_SECONDS: Idle sleep for background workers (default: 1s)

    Exponential Backoff:
        Delay calculation: backoff_delay * (2 ^ (attempt - 1))

        Example with defaults (base=2s):
            Attempt 1 fails: retry in 2s
            Attempt 2 fails: retry in 4s
            Attempt 3 fails: job failed, notification marked FAILED

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        push_cap = settings.queue.rate_limit_push
        ```
    """

    max_attempts: int = Field(
        default=3,
        alias="QUEUE_MAX_ATTEMPTS",
        description="Delivery attempts per job",
    )
    backoff_delay_seconds: int = Field(
        default=2,
        alias="QUEUE_BACKOFF_DELAY_SECONDS",
        description="Base delay for exponential backoff (seconds)",
    )
    worker_concurrency: int = Field(
        default=10,
        alias="QUEUE_WORKER_CONCURRENCY",
        description="Maximum in-flight jobs per channel worker",
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        alias="QUEUE_RATE_LIMIT_WINDOW_SECONDS",
        description="Trailing window for per-user channel rate limits",
    )
    rate_limit_push: int = Field(default=10, alias="QUEUE_RATE_LIMIT_PUSH")
    rate_limit_email: int = Field(default=5, alias="QUEUE_RATE_LIMIT_EMAIL")
    rate_limit_sms: int = Field(default=3, alias="QUEUE_RATE_LIMIT_SMS")
    rate_limit_in_app: int = Field(default=50, alias="QUEUE_RATE_LIMIT_IN_APP")
    clean_grace_hours: int = Field(
        default=24,
        alias="QUEUE_CLEAN_GRACE_HOURS",
        description="Finished jobs older than this are removed by clean",
    )
    keep_completed: int = Field(
        default=100,
        alias="QUEUE_KEEP_COMPLETED",
        description="Completed jobs retained per queue",
    )
    keep_failed: int = Field(
        default=50,
        alias="QUEUE_KEEP_FAILED",
        description="Failed jobs retained per queue",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        alias="QUEUE_POLL_INTERVAL_SECONDS",
        description="Sleep between polls when a background worker finds no jobs",
    )

"""Infrastructure configuration module - public API.

This module provides centralized configuration management for the notification
platform using Pydantic BaseSettings with domain-based organization.

There is no module-level settings instance. Resolve settings through the
cached provider, or construct ``Settings`` explicitly in tests.

Exports:
    Settings: Main settings class
    NotificationsFeatureSettings: Notification feature settings class
    QueueSettings: Delivery queue settings class

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    retry_attempts = settings.queue.max_attempts
    dedup_window = settings.notifications.duplicate_window_seconds
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.features.notifications import (
    NotificationsFeatureSettings,
)
from infrastructure.configuration.infrastructure.queue import QueueSettings

__all__ = ["Settings", "NotificationsFeatureSettings", "QueueSettings"]

"""Feature settings __init__ - exports all feature settings."""

from infrastructure.configuration.features.notifications import (
    NotificationsFeatureSettings,
)

__all__ = [
    "NotificationsFeatureSettings",
]

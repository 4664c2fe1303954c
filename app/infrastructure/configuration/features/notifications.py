"""Notifications feature settings."""

from pydantic import Field, field_validator

from infrastructure.configuration.base import FeatureSettings


class NotificationsFeatureSettings(FeatureSettings):
    """Configuration for notification creation, preferences and read side.

    Environment Variables:
        NOTIFICATIONS_DUPLICATE_WINDOW_SECONDS: Window for duplicate suppression
        NOTIFICATIONS_MAX_TITLE_LENGTH: Maximum title length (characters)
        NOTIFICATIONS_MAX_CONTENT_LENGTH: Maximum content length (characters)
        NOTIFICATIONS_DEFAULT_TTL_HOURS: Expiry for types missing from the TTL table
        NOTIFICATIONS_DAILY_DIGEST_HOUR: Local hour for DAILY frequency delivery
        NOTIFICATIONS_DEFAULT_PAGE_SIZE: Default page size for listings
        NOTIFICATIONS_MAX_PAGE_SIZE: Upper bound on requested page size

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        window = settings.notifications.duplicate_window_seconds
        ```
    """

    duplicate_window_seconds: int = Field(
        default=300,
        alias="NOTIFICATIONS_DUPLICATE_WINDOW_SECONDS",
        description="Identical (user, type, title) within this window is rejected",
    )
    max_title_length: int = Field(
        default=200,
        alias="NOTIFICATIONS_MAX_TITLE_LENGTH",
        description="Maximum notification title length",
    )
    max_content_length: int = Field(
        default=2000,
        alias="NOTIFICATIONS_MAX_CONTENT_LENGTH",
        description="Maximum notification content length",
    )
    default_ttl_hours: int = Field(
        default=24,
        alias="NOTIFICATIONS_DEFAULT_TTL_HOURS",
        description="Fallback time-to-live when a type has no TTL entry",
    )
    daily_digest_hour: int = Field(
        default=9,
        alias="NOTIFICATIONS_DAILY_DIGEST_HOUR",
        description="Local hour at which DAILY frequency notifications are sent",
    )
    default_page_size: int = Field(
        default=20,
        alias="NOTIFICATIONS_DEFAULT_PAGE_SIZE",
        description="Default number of notifications per listing page",
    )
    max_page_size: int = Field(
        default=100,
        alias="NOTIFICATIONS_MAX_PAGE_SIZE",
        description="Maximum number of notifications per listing page",
    )

    @field_validator("daily_digest_hour")
    @classmethod
    def validate_digest_hour(cls, v: int) -> int:
        """Digest hour must be a valid hour of day."""
        if not 0 <= v <= 23:
            raise ValueError("daily_digest_hour must be between 0 and 23")
        return v

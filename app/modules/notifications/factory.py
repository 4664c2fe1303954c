"""Notification creation: validation, sanitization, deduplication, persistence."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from infrastructure.logging import get_module_logger
from modules.notifications.constants import (
    DATA_SCHEMA_VERSION,
    DEFAULT_LANGUAGE,
    INCOMPATIBLE_CHANNELS,
    SYSTEM_CREATOR,
    TTL_HOURS,
)
from modules.notifications.domain.errors import (
    DuplicateError,
    ValidationError,
    wrap_storage_errors,
)
from modules.notifications.domain.models import (
    CreateNotificationRequest,
    Notification,
    NotificationPreferences,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import DeliveryChannel, NotificationStatus
from modules.notifications.preferences import PreferenceResolver
from modules.notifications.sanitization import sanitize_payload, sanitize_text
from modules.notifications.store import NotificationStore

logger = get_module_logger()


class NotificationFactory:
    """Builds and persists notification records.

    A record is always persisted once validation passes. It is PENDING when
    at least one channel survives preference filtering, otherwise SENT
    (recorded but suppressed) and never enqueued.

    Attributes:
        store: NotificationStore for persistence and duplicate lookups
        preferences: PreferenceResolver used to compute effective channels
        duplicate_window: Identical (user, type, title) inside it is rejected
        max_title_length: Maximum title length
        max_content_length: Maximum content length
        default_ttl_hours: Expiry for types missing from the TTL table
    """

    def __init__(
        self,
        store: NotificationStore,
        preferences: PreferenceResolver,
        duplicate_window_seconds: int = 300,
        max_title_length: int = 200,
        max_content_length: int = 2000,
        default_ttl_hours: int = 24,
    ) -> None:
        self.store = store
        self.preferences = preferences
        self.duplicate_window = timedelta(seconds=duplicate_window_seconds)
        self.max_title_length = max_title_length
        self.max_content_length = max_content_length
        self.default_ttl_hours = default_ttl_hours

    @wrap_storage_errors("Failed to create notification", "CREATION_FAILED")
    def create_notification(
        self,
        request: Union[CreateNotificationRequest, Dict[str, Any]],
        preferences: Optional[NotificationPreferences] = None,
        deferred_until: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Validate, sanitize and persist a notification.

        Args:
            request: CreateNotificationRequest or an equivalent dict
            preferences: Recipient preferences, fetched when omitted
            deferred_until: Send time computed from the frequency policy
            now: Reference time, defaults to the current UTC time

        Returns:
            The persisted Notification

        Raises:
            ValidationError: Invalid fields, timestamps or channel/type pairs
            DuplicateError: Same (user, type, title) inside the duplicate window
            NotificationError: CREATION_FAILED when the store fails
        """
        request = self.parse_request(request)
        now = as_utc(now or utc_now())
        self.validate_request(request, now)

        title = sanitize_text(request.title)
        content = sanitize_text(request.content)
        if not title:
            raise ValidationError("Title is required")
        if not content:
            raise ValidationError("Content is required")

        self._check_duplicate(request, title, now)

        if preferences is None:
            preferences = self.preferences.get_preferences(request.user_id)

        effective = self.preferences.determine_effective_channels(
            preferences, request.type, request.channels, request.priority, now
        )

        scheduled_at = request.scheduled_at
        if scheduled_at is None and deferred_until is not None:
            if request.expires_at is None or deferred_until < request.expires_at:
                scheduled_at = deferred_until

        expires_at = request.expires_at or self._default_expiry(
            request, scheduled_at or now
        )

        data = sanitize_payload(dict(request.data))
        data.update(
            {
                "original_channels": [c.value for c in request.channels],
                "effective_channels": [c.value for c in effective],
                "created_by": request.created_by or SYSTEM_CREATOR,
                "version": DATA_SCHEMA_VERSION,
            }
        )
        if preferences.language and preferences.language != DEFAULT_LANGUAGE:
            data.update(
                {
                    "original_language": DEFAULT_LANGUAGE,
                    "target_language": preferences.language,
                    "localization_applied": True,
                }
            )

        status = NotificationStatus.PENDING if effective else NotificationStatus.SENT
        notification = Notification(
            user_id=request.user_id,
            type=request.type,
            title=title,
            content=content,
            data=data,
            channels=effective,
            priority=request.priority,
            status=status,
            created_at=now,
            updated_at=now,
            scheduled_at=scheduled_at,
            expires_at=expires_at,
        )
        saved = self.store.save(notification)

        if status == NotificationStatus.SENT:
            logger.info(
                "notification_suppressed",
                notification_id=saved.id,
                user_id=saved.user_id,
                type=saved.type.value,
                requested_channels=data["original_channels"],
            )
        else:
            logger.info(
                "notification_created",
                notification_id=saved.id,
                user_id=saved.user_id,
                type=saved.type.value,
                priority=saved.priority.value,
                channels=data["effective_channels"],
                scheduled_at=saved.scheduled_at.isoformat() if saved.scheduled_at else None,
            )
        return saved

    @staticmethod
    def parse_request(
        request: Union[CreateNotificationRequest, Dict[str, Any]],
    ) -> CreateNotificationRequest:
        if isinstance(request, CreateNotificationRequest):
            return request
        try:
            return CreateNotificationRequest.model_validate(request)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(
                exc, "Invalid notification request"
            ) from exc

    def validate_request(self, request: CreateNotificationRequest, now: datetime) -> None:
        """Check bounds, timestamps and channel compatibility.

        Raises:
            ValidationError: On the first violated rule
        """
        if len(request.title) > self.max_title_length:
            raise ValidationError(
                f"Title must be {self.max_title_length} characters or less"
            )
        if len(request.content) > self.max_content_length:
            raise ValidationError(
                f"Content must be {self.max_content_length} characters or less"
            )
        if request.scheduled_at is not None and request.scheduled_at <= now:
            raise ValidationError("Scheduled time must be in the future")
        if request.expires_at is not None and request.expires_at <= now:
            raise ValidationError("Expiration time must be in the future")
        if (
            request.scheduled_at is not None
            and request.expires_at is not None
            and request.scheduled_at >= request.expires_at
        ):
            raise ValidationError("Expiration time must be after scheduled time")

        incompatible = self.incompatible_channels(request)
        if incompatible:
            names = ", ".join(c.value for c in incompatible)
            raise ValidationError(
                f"Channels {names} are not compatible with notification type "
                f"{request.type.value}",
                details={"channels": [c.value for c in incompatible]},
            )

    @staticmethod
    def incompatible_channels(
        request: CreateNotificationRequest,
    ) -> List[DeliveryChannel]:
        forbidden = INCOMPATIBLE_CHANNELS.get(request.type, frozenset())
        return [channel for channel in request.channels if channel in forbidden]

    def _check_duplicate(
        self, request: CreateNotificationRequest, title: str, now: datetime
    ) -> None:
        existing = self.store.find_recent_duplicate(
            request.user_id, request.type, title, now - self.duplicate_window
        )
        if existing is not None:
            minutes = int(self.duplicate_window.total_seconds() // 60)
            logger.warning(
                "duplicate_notification_rejected",
                user_id=request.user_id,
                type=request.type.value,
                existing_notification_id=existing.id,
            )
            raise DuplicateError(
                f"Duplicate notification detected within the last {minutes} minutes",
                details={"existing_notification_id": existing.id},
            )

    def _default_expiry(
        self, request: CreateNotificationRequest, start: datetime
    ) -> datetime:
        hours = TTL_HOURS.get(request.type, self.default_ttl_hours)
        return start + timedelta(hours=hours)

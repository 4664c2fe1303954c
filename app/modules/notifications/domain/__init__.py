"""Domain types, models and errors for the notifications module."""

from modules.notifications.domain.errors import (
    DuplicateError,
    NotFoundError,
    NotificationError,
    QueueError,
    ValidationError,
)
from modules.notifications.domain.models import (
    BatchCreateError,
    BatchCreateResult,
    BroadcastMessage,
    BroadcastRecipientDetail,
    BroadcastResult,
    CreateNotificationRequest,
    Notification,
    NotificationFilters,
    NotificationPage,
    NotificationPreferences,
    NotificationStats,
    PreferenceSummary,
    PreferencesUpdate,
    QueueStats,
    QuietHours,
    QuietHoursUpdate,
    UserSegment,
)
from modules.notifications.domain.types import (
    BroadcastOutcome,
    DeliveryChannel,
    JobState,
    NotificationFrequency,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
    SortField,
    SortOrder,
)

__all__ = [
    # Errors
    "NotificationError",
    "ValidationError",
    "DuplicateError",
    "NotFoundError",
    "QueueError",
    # Models
    "BatchCreateError",
    "BatchCreateResult",
    "BroadcastMessage",
    "BroadcastRecipientDetail",
    "BroadcastResult",
    "CreateNotificationRequest",
    "Notification",
    "NotificationFilters",
    "NotificationPage",
    "NotificationPreferences",
    "NotificationStats",
    "PreferenceSummary",
    "PreferencesUpdate",
    "QueueStats",
    "QuietHours",
    "QuietHoursUpdate",
    "UserSegment",
    # Types
    "BroadcastOutcome",
    "DeliveryChannel",
    "JobState",
    "NotificationFrequency",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationType",
    "SortField",
    "SortOrder",
]

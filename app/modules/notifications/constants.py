"""Default tables for notification delivery.

Every default is an explicit mapping keyed by enum; nothing is derived at
runtime. Settings may override limits and retry policy, but not these tables.
"""

from typing import Dict, FrozenSet, List

from modules.notifications.domain.types import (
    DeliveryChannel,
    NotificationPriority,
    NotificationType,
)

IN_APP = DeliveryChannel.IN_APP
PUSH = DeliveryChannel.PUSH
EMAIL = DeliveryChannel.EMAIL
SMS = DeliveryChannel.SMS

DEFAULT_CHANNELS: Dict[NotificationType, List[DeliveryChannel]] = {
    NotificationType.BOOKING_CONFIRMATION: [IN_APP, EMAIL, PUSH],
    NotificationType.BOOKING_REMINDER: [IN_APP, PUSH],
    NotificationType.BOOKING_CANCELLED: [IN_APP, EMAIL, PUSH],
    NotificationType.PAYMENT_SUCCESS: [IN_APP, EMAIL],
    NotificationType.PAYMENT_FAILED: [IN_APP, EMAIL, PUSH],
    NotificationType.CHAT_MESSAGE: [IN_APP, PUSH],
    NotificationType.CHAT_MENTION: [IN_APP, PUSH],
    NotificationType.SYSTEM_ANNOUNCEMENT: [IN_APP, EMAIL],
    NotificationType.SECURITY_ALERT: [IN_APP, EMAIL, PUSH],
    NotificationType.PROMOTIONAL: [IN_APP],
}

# Hours until a notification expires when the request has no expires_at
TTL_HOURS: Dict[NotificationType, int] = {
    NotificationType.CHAT_MESSAGE: 24,
    NotificationType.CHAT_MENTION: 48,
    NotificationType.BOOKING_CONFIRMATION: 168,
    NotificationType.BOOKING_REMINDER: 24,
    NotificationType.BOOKING_CANCELLED: 168,
    NotificationType.PAYMENT_SUCCESS: 168,
    NotificationType.PAYMENT_FAILED: 72,
    NotificationType.SYSTEM_ANNOUNCEMENT: 168,
    NotificationType.SECURITY_ALERT: 72,
    NotificationType.PROMOTIONAL: 48,
}

INCOMPATIBLE_CHANNELS: Dict[NotificationType, FrozenSet[DeliveryChannel]] = {
    NotificationType.SYSTEM_ANNOUNCEMENT: frozenset({SMS}),
    NotificationType.PROMOTIONAL: frozenset({SMS}),
}

# Channels left during quiet hours
QUIET_HOURS_CRITICAL_CHANNELS: FrozenSet[DeliveryChannel] = frozenset({PUSH, SMS})
QUIET_HOURS_CHANNELS: FrozenSet[DeliveryChannel] = frozenset({IN_APP})

# Channels left when delivery is deferred by HOURLY/DAILY frequency
DEFERRED_CHANNELS: FrozenSet[DeliveryChannel] = frozenset({IN_APP, EMAIL})

JOB_PRIORITY: Dict[NotificationPriority, int] = {
    NotificationPriority.LOW: 2,
    NotificationPriority.NORMAL: 5,
    NotificationPriority.HIGH: 7,
    NotificationPriority.CRITICAL: 10,
}

QUEUE_NAMES: Dict[DeliveryChannel, str] = {
    IN_APP: "notifications",
    PUSH: "push-notifications",
    EMAIL: "email-notifications",
    SMS: "sms-notifications",
}

DEFAULT_LANGUAGE = "en"
DEFAULT_TIMEZONE = "UTC"
DATA_SCHEMA_VERSION = "1.0"
SYSTEM_CREATOR = "system"
BATCH_JOB_PREFIX = "batch_"

"""Enumerations shared across the notifications module.

Values match what is persisted and what API clients send, so every enum is a
``str`` subclass and compares equal to its wire value.
"""

from enum import Enum


class NotificationType(str, Enum):
    """Business event that produced the notification."""

    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_REMINDER = "BOOKING_REMINDER"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CHAT_MESSAGE = "CHAT_MESSAGE"
    CHAT_MENTION = "CHAT_MENTION"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"
    SECURITY_ALERT = "SECURITY_ALERT"
    PROMOTIONAL = "PROMOTIONAL"


class DeliveryChannel(str, Enum):
    """Delivery medium. Each channel has its own queue, rate limit and worker."""

    IN_APP = "IN_APP"
    PUSH = "PUSH"
    EMAIL = "EMAIL"
    SMS = "SMS"


class NotificationPriority(str, Enum):
    """Notification urgency. CRITICAL bypasses preferences and deferral."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NotificationStatus(str, Enum):
    """Delivery lifecycle status.

    Values:
        PENDING: Recorded and waiting for a channel worker
        SENT: Recorded with no deliverable channel (suppressed) or handed off
        DELIVERED: At least one channel reported successful delivery
        READ: Acknowledged by the recipient
        FAILED: A channel exhausted its delivery attempts
    """

    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


class NotificationFrequency(str, Enum):
    """How soon non-critical notifications are delivered."""

    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"


class JobState(str, Enum):
    """State of a delivery job inside a channel queue."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class SortField(str, Enum):
    """Sortable notification fields for listings."""

    CREATED_AT = "created_at"
    PRIORITY = "priority"
    TYPE = "type"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BroadcastOutcome(str, Enum):
    """Per-recipient outcome of a broadcast."""

    SENT = "sent"
    SUPPRESSED = "suppressed"
    FAILED = "failed"

"""Pydantic models for the notifications module.

These are the validated structures that cross every write boundary:
notification records, per-user preferences (including quiet hours and the
channel map), listing filters, broadcast requests and queue statistics.
Queue jobs are internal and live in ``modules.notifications.queue.models``.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.notifications.domain.timeutils import as_utc, utc_now, validate_timezone
from modules.notifications.domain.types import (
    BroadcastOutcome,
    DeliveryChannel,
    NotificationFrequency,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
    SortField,
    SortOrder,
)

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")


def _validate_time_string(value: str) -> str:
    if not TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time format: {value}. Expected HH:mm")
    return value


def _dedupe_channels(channels: List[DeliveryChannel]) -> List[DeliveryChannel]:
    seen: List[DeliveryChannel] = []
    for channel in channels:
        if channel not in seen:
            seen.append(channel)
    return seen


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


class QuietHours(BaseModel):
    """Local time window during which non-critical delivery is in-app only."""

    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "08:00"
    timezone: str = "UTC"
    allow_critical: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_time_string(v)

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: str) -> str:
        return validate_timezone(v)


class QuietHoursUpdate(BaseModel):
    """Partial quiet-hours update; unset fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    timezone: Optional[str] = None
    allow_critical: Optional[bool] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_time_string(v) if v is not None else v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone(v) if v is not None else v


class NotificationPreferences(BaseModel):
    """Per-user delivery preferences.

    Attributes:
        user_id: Owner of the preferences (one record per user)
        channels: Ordered channel list per notification type
        quiet_hours: Optional quiet-hours window
        frequency: Deferral policy for non-critical notifications
        language: Preferred language code
        timezone: IANA timezone used for scheduling
    """

    user_id: str = Field(..., min_length=1)
    channels: Dict[NotificationType, List[DeliveryChannel]] = Field(
        default_factory=dict
    )
    quiet_hours: Optional[QuietHours] = None
    frequency: NotificationFrequency = NotificationFrequency.IMMEDIATE
    language: str = "en"
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("channels")
    @classmethod
    def dedupe_channels(
        cls, v: Dict[NotificationType, List[DeliveryChannel]]
    ) -> Dict[NotificationType, List[DeliveryChannel]]:
        return {k: _dedupe_channels(channels) for k, channels in v.items()}

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: str) -> str:
        return validate_timezone(v)

    def channels_for(self, notification_type: NotificationType) -> List[DeliveryChannel]:
        return list(self.channels.get(notification_type, []))


class PreferencesUpdate(BaseModel):
    """Partial preferences update.

    ``channels`` and ``quiet_hours`` are merged into the stored values;
    types absent from ``channels`` keep their current channel list.
    """

    model_config = ConfigDict(extra="forbid")

    channels: Optional[Dict[NotificationType, List[DeliveryChannel]]] = None
    quiet_hours: Optional[QuietHoursUpdate] = None
    frequency: Optional[NotificationFrequency] = None
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)
    timezone: Optional[str] = None

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v):
        if v is None:
            return v
        return {k: _dedupe_channels(channels) for k, channels in v.items()}

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone(v) if v is not None else v


class CreateNotificationRequest(BaseModel):
    """Request to record and deliver one notification.

    Length limits and "strictly in the future" checks depend on settings and
    the current time, so they are enforced by the factory rather than here.
    """

    user_id: str = Field(..., min_length=1)
    type: NotificationType
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    channels: List[DeliveryChannel] = Field(..., min_length=1)
    priority: NotificationPriority = NotificationPriority.NORMAL
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v: List[DeliveryChannel]) -> List[DeliveryChannel]:
        return _dedupe_channels(v)

    @field_validator("scheduled_at", "expires_at")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)


class Notification(BaseModel):
    """Persisted notification record.

    Invariants:
        - channels is a subset of data["original_channels"]
        - scheduled_at < expires_at when both are set
        - status never returns to PENDING
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    type: NotificationType
    title: str
    content: str
    data: Dict[str, Any] = Field(default_factory=dict)
    channels: List[DeliveryChannel] = Field(default_factory=list)
    priority: NotificationPriority = NotificationPriority.NORMAL
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "scheduled_at", "expires_at", "read_at")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @model_validator(mode="after")
    def check_schedule_before_expiry(self) -> "Notification":
        if self.scheduled_at and self.expires_at and self.scheduled_at >= self.expires_at:
            raise ValueError("scheduled_at must be before expires_at")
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utc_now())

    @property
    def is_read(self) -> bool:
        return self.status == NotificationStatus.READ


class NotificationFilters(BaseModel):
    """Listing filters for a user's notifications."""

    model_config = ConfigDict(extra="forbid")

    types: Optional[List[NotificationType]] = None
    statuses: Optional[List[NotificationStatus]] = None
    priorities: Optional[List[NotificationPriority]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    unread_only: bool = False
    include_expired: bool = False
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("date_from", "date_to")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)


class NotificationPage(BaseModel):
    items: List[Notification]
    total: int
    unread_count: int
    limit: int
    offset: int


class NotificationStats(BaseModel):
    """Per-user notification counters."""

    total: int = 0
    unread: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_channel: Dict[str, int] = Field(default_factory=dict)


class PreferenceSummary(BaseModel):
    user_id: str
    enabled_channels: Dict[NotificationType, List[DeliveryChannel]]
    quiet_hours_enabled: bool
    in_quiet_hours: bool
    frequency: NotificationFrequency
    language: str
    timezone: str


class BatchCreateError(BaseModel):
    index: int
    user_id: Optional[str] = None
    code: str
    message: str


class BatchCreateResult(BaseModel):
    created: List[Notification] = Field(default_factory=list)
    errors: List[BatchCreateError] = Field(default_factory=list)


class UserSegment(BaseModel):
    """Broadcast audience.

    Resolution precedence: explicit ``user_ids``, then ``all``, then the
    union of ``roles`` and ``locations``.
    """

    user_ids: Optional[List[str]] = None
    roles: Optional[List[str]] = None
    locations: Optional[List[str]] = None
    all: bool = False

    @model_validator(mode="after")
    def require_criterion(self) -> "UserSegment":
        if not (self.user_ids or self.roles or self.locations or self.all):
            raise ValueError(
                "Segment requires user_ids, roles, locations or all=True"
            )
        return self


class BroadcastMessage(BaseModel):
    """Message fanned out to every recipient of a segment."""

    type: NotificationType
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    channels: List[DeliveryChannel] = Field(..., min_length=1)
    priority: NotificationPriority = NotificationPriority.NORMAL
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_by: Optional[str] = None

    def to_request(self, user_id: str) -> CreateNotificationRequest:
        return CreateNotificationRequest(
            user_id=user_id,
            type=self.type,
            title=self.title,
            content=self.content,
            data=dict(self.data),
            channels=list(self.channels),
            priority=self.priority,
            scheduled_at=self.scheduled_at,
            expires_at=self.expires_at,
            created_by=self.created_by,
        )


class BroadcastRecipientDetail(BaseModel):
    user_id: str
    outcome: BroadcastOutcome
    notification_id: Optional[str] = None
    channels: List[DeliveryChannel] = Field(default_factory=list)
    scheduled_at: Optional[datetime] = None
    error: Optional[str] = None


class BroadcastResult(BaseModel):
    broadcast_id: str
    total_recipients: int = 0
    sent: int = 0
    suppressed: int = 0
    failed: int = 0
    details: List[BroadcastRecipientDetail] = Field(default_factory=list)


class QueueStats(BaseModel):
    """Job counters summed across channel queues."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    available: bool = True
    queues: Dict[str, Dict[str, int]] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

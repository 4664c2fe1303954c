"""Delivery job model.

A job is the per-channel unit of delivery owned by the queue broker. Jobs
are internal and never cross the API boundary, so they are plain dataclasses.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from modules.notifications.domain.timeutils import utc_now
from modules.notifications.domain.types import (
    DeliveryChannel,
    JobState,
    NotificationType,
)


@dataclass
class Job:
    """One delivery attempt unit on one channel.

    Fields:
        channel: Channel whose queue holds the job
        user_id: Recipient
        notification_type: Type of the source notification(s)
        notification_ids: Source notifications; more than one for batch jobs
        priority: Numeric priority, higher dequeues first
        payload: Title, content and data handed to the channel handler
        id: Unique identifier; batch jobs use the ``batch_`` prefix
        attempts: Failed attempts so far
        max_attempts: Attempts before the job fails permanently
        backoff_delay_seconds: Base delay of the exponential backoff
        state: Current JobState inside the queue
        available_at: Earliest time the job may be fetched
        failed_reason: Last failure message

    Example:
        job = Job(
            channel=DeliveryChannel.PUSH,
            user_id="user-1",
            notification_type=NotificationType.CHAT_MESSAGE,
            notification_ids=["n-1"],
            priority=5,
            payload={"title": "Hi", "content": "Hello"},
        )
    """

    channel: DeliveryChannel
    user_id: str
    notification_type: NotificationType
    notification_ids: List[str]
    priority: int
    payload: Dict[str, Any] = field(default_factory=dict)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 0
    max_attempts: int = 3
    backoff_delay_seconds: int = 2
    state: JobState = JobState.WAITING

    created_at: datetime = field(default_factory=utc_now)
    available_at: datetime = field(default_factory=utc_now)
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    failed_reason: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.notification_ids:
            raise ValueError("notification_ids must not be empty")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def is_batch(self) -> bool:
        return len(self.notification_ids) > 1

    def backoff_for(self, attempt: int) -> int:
        """Delay in seconds before retrying after failed attempt number ``attempt``."""
        return self.backoff_delay_seconds * (2 ** max(attempt - 1, 0))

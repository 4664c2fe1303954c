"""Frequency-based deferral of non-critical notifications."""

from datetime import datetime, timedelta
from typing import Optional

import pytz

from infrastructure.logging import get_module_logger
from modules.notifications.domain.models import (
    CreateNotificationRequest,
    NotificationPreferences,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import (
    NotificationFrequency,
    NotificationPriority,
)

logger = get_module_logger()


class FrequencyScheduler:
    """Computes when a notification should be delivered.

    An explicit ``scheduled_at`` on the request always wins over the user's
    frequency policy.

    Attributes:
        daily_hour: Local hour at which DAILY notifications are delivered
    """

    def __init__(self, daily_hour: int = 9) -> None:
        self.daily_hour = daily_hour

    def apply_frequency_scheduling(
        self,
        request: CreateNotificationRequest,
        preferences: NotificationPreferences,
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """Return the deferred send time in UTC, or None to send now."""
        if request.scheduled_at is not None:
            return None
        if preferences.frequency == NotificationFrequency.IMMEDIATE:
            return None
        if request.priority == NotificationPriority.CRITICAL:
            return None

        now = as_utc(now or utc_now())
        if preferences.frequency == NotificationFrequency.HOURLY:
            scheduled = self.next_hour(now)
        else:
            scheduled = self.next_daily(now, preferences.timezone)

        logger.debug(
            "notification_deferred",
            user_id=request.user_id,
            frequency=preferences.frequency.value,
            scheduled_at=scheduled.isoformat(),
        )
        return scheduled

    @staticmethod
    def next_hour(now: datetime) -> datetime:
        """Top of the next hour."""
        return (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)

    def next_daily(self, now: datetime, tz_name: str) -> datetime:
        """Today's digest hour in ``tz_name`` if still ahead, otherwise tomorrow's."""
        tz = pytz.timezone(tz_name)
        local_now = as_utc(now).astimezone(tz)
        target_date = local_now.date()
        if local_now.hour >= self.daily_hour:
            target_date = target_date + timedelta(days=1)
        local_target = tz.localize(
            datetime(target_date.year, target_date.month, target_date.day, self.daily_hour)
        )
        return as_utc(local_target)

"""Preference resolution for notification delivery.

Owns per-user preferences (created lazily with defaults) and decides which of
the requested channels a notification is actually delivered on.

Effective channel precedence:
    1. Base set: requested channels the user enabled for the type, in request
       order. CRITICAL priority uses the requested channels unfiltered.
    2. Quiet hours: while the window is active, CRITICAL with allow_critical
       keeps only PUSH/SMS; everything else keeps only IN_APP.
    3. Frequency: HOURLY/DAILY keeps only IN_APP/EMAIL unless CRITICAL.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from infrastructure.logging import get_module_logger
from modules.notifications.constants import (
    DEFAULT_CHANNELS,
    DEFAULT_LANGUAGE,
    DEFAULT_TIMEZONE,
    DEFERRED_CHANNELS,
    QUIET_HOURS_CHANNELS,
    QUIET_HOURS_CRITICAL_CHANNELS,
)
from modules.notifications.domain.errors import ValidationError, wrap_storage_errors
from modules.notifications.domain.models import (
    NotificationPreferences,
    PreferenceSummary,
    PreferencesUpdate,
    QuietHours,
    QuietHoursUpdate,
)
from modules.notifications.domain.timeutils import to_local, utc_now
from modules.notifications.domain.types import (
    DeliveryChannel,
    NotificationFrequency,
    NotificationPriority,
    NotificationType,
)
from modules.notifications.store import PreferencesStore

logger = get_module_logger()


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def build_default_preferences(user_id: str) -> NotificationPreferences:
    """Return the default preferences for a user without persisting them."""
    return NotificationPreferences(
        user_id=user_id,
        channels={k: list(v) for k, v in DEFAULT_CHANNELS.items()},
        quiet_hours=QuietHours(),
        frequency=NotificationFrequency.IMMEDIATE,
        language=DEFAULT_LANGUAGE,
        timezone=DEFAULT_TIMEZONE,
    )


class PreferenceResolver:
    """Reads, updates and applies per-user notification preferences.

    Attributes:
        store: PreferencesStore holding one record per user
    """

    def __init__(self, store: PreferencesStore) -> None:
        self.store = store
        # Serializes default creation so concurrent first reads create one record
        self._create_lock = threading.Lock()

    @wrap_storage_errors("Failed to fetch preferences", "PREFERENCES_FETCH_FAILED")
    def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Return the user's preferences, creating defaults on first access."""
        preferences = self.store.get(user_id)
        if preferences is not None:
            return preferences

        with self._create_lock:
            preferences = self.store.get(user_id)
            if preferences is None:
                preferences = self.store.save(build_default_preferences(user_id))
                logger.info("default_preferences_created", user_id=user_id)
        return preferences

    @wrap_storage_errors("Failed to fetch preferences", "PREFERENCES_FETCH_FAILED")
    def get_batch_preferences(
        self, user_ids: Iterable[str]
    ) -> Dict[str, NotificationPreferences]:
        """Fetch preferences for many users at once, creating missing defaults."""
        ids = list(dict.fromkeys(user_ids))
        found = self.store.get_many(ids)
        missing = [user_id for user_id in ids if user_id not in found]
        for user_id in missing:
            found[user_id] = self.get_preferences(user_id)
        if missing:
            logger.debug(
                "batch_preferences_defaults_created",
                requested=len(ids),
                created=len(missing),
            )
        return {user_id: found[user_id] for user_id in ids}

    @wrap_storage_errors("Failed to update preferences", "PREFERENCES_UPDATE_FAILED")
    def update_preferences(
        self,
        user_id: str,
        updates: Union[PreferencesUpdate, Dict[str, Any]],
    ) -> NotificationPreferences:
        """Merge a partial update into the user's preferences.

        The channel map and quiet hours are merged key by key with the stored
        values; scalar fields are replaced when provided.

        Args:
            user_id: Owner of the preferences
            updates: PreferencesUpdate or an equivalent dict

        Returns:
            The stored preferences after the update

        Raises:
            ValidationError: Unknown fields, enum values, HH:mm strings or
                timezones
        """
        update = self._parse_update(updates)
        current = self.get_preferences(user_id)

        merged = current.model_dump()
        if update.channels is not None:
            merged["channels"] = {**current.channels, **update.channels}
        if update.quiet_hours is not None:
            base = current.quiet_hours or QuietHours(timezone=current.timezone)
            merged["quiet_hours"] = {
                **base.model_dump(),
                **update.quiet_hours.model_dump(exclude_none=True),
            }
        if update.frequency is not None:
            merged["frequency"] = update.frequency
        if update.language is not None:
            merged["language"] = update.language
        if update.timezone is not None:
            merged["timezone"] = update.timezone
            quiet_hours_tz_given = (
                update.quiet_hours is not None
                and update.quiet_hours.timezone is not None
            )
            if merged.get("quiet_hours") and not quiet_hours_tz_given:
                merged["quiet_hours"] = {
                    **dict(merged["quiet_hours"]),
                    "timezone": update.timezone,
                }
        merged["updated_at"] = utc_now()

        try:
            preferences = NotificationPreferences.model_validate(merged)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid preferences") from exc

        saved = self.store.save(preferences)
        logger.info(
            "preferences_updated",
            user_id=user_id,
            has_channel_updates=update.channels is not None,
            has_quiet_hours_updates=update.quiet_hours is not None,
            frequency=saved.frequency.value,
            language=saved.language,
            timezone=saved.timezone,
        )
        return saved

    def update_channel_preferences(
        self,
        user_id: str,
        notification_type: NotificationType,
        channels: List[DeliveryChannel],
    ) -> NotificationPreferences:
        return self.update_preferences(
            user_id, {"channels": {notification_type: channels}}
        )

    def update_quiet_hours(
        self,
        user_id: str,
        quiet_hours: Union[QuietHoursUpdate, Dict[str, Any]],
    ) -> NotificationPreferences:
        if isinstance(quiet_hours, QuietHoursUpdate):
            quiet_hours = quiet_hours.model_dump(exclude_none=True)
        return self.update_preferences(user_id, {"quiet_hours": quiet_hours})

    @wrap_storage_errors("Failed to reset preferences", "PREFERENCES_UPDATE_FAILED")
    def reset_to_defaults(self, user_id: str) -> NotificationPreferences:
        """Replace the user's preferences with the defaults."""
        self.store.delete(user_id)
        preferences = self.store.save(build_default_preferences(user_id))
        logger.info("preferences_reset", user_id=user_id)
        return preferences

    def is_in_quiet_hours(
        self,
        preferences: NotificationPreferences,
        priority: NotificationPriority,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether delivery at ``now`` is suppressed by quiet hours.

        CRITICAL notifications escape when the user allows critical alerts.
        """
        quiet_hours = preferences.quiet_hours
        if quiet_hours is None or not quiet_hours.enabled:
            return False
        if priority == NotificationPriority.CRITICAL and quiet_hours.allow_critical:
            return False
        return self.quiet_window_active(preferences, now)

    def quiet_window_active(
        self,
        preferences: NotificationPreferences,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether ``now`` falls inside the enabled quiet-hours window.

        The window is evaluated on HH:mm in the quiet-hours timezone, falling
        back to the preferences timezone. A start later than the end wraps
        midnight.
        """
        quiet_hours = preferences.quiet_hours
        if quiet_hours is None or not quiet_hours.enabled:
            return False

        tz_name = quiet_hours.timezone or preferences.timezone
        local = to_local(now or utc_now(), tz_name)
        current = local.hour * 60 + local.minute
        start = _minutes(quiet_hours.start_time)
        end = _minutes(quiet_hours.end_time)

        if start > end:
            return current >= start or current <= end
        return start <= current <= end

    def determine_effective_channels(
        self,
        preferences: NotificationPreferences,
        notification_type: NotificationType,
        requested: List[DeliveryChannel],
        priority: NotificationPriority,
        now: Optional[datetime] = None,
    ) -> List[DeliveryChannel]:
        """Filter the requested channels by preferences, quiet hours and frequency.

        The result is always an ordered subset of ``requested``.
        """
        if priority == NotificationPriority.CRITICAL:
            effective = list(requested)
        else:
            preferred = set(preferences.channels_for(notification_type))
            effective = [channel for channel in requested if channel in preferred]

        if self.quiet_window_active(preferences, now):
            quiet_hours = preferences.quiet_hours
            if priority == NotificationPriority.CRITICAL and quiet_hours.allow_critical:
                allowed = QUIET_HOURS_CRITICAL_CHANNELS
            else:
                allowed = QUIET_HOURS_CHANNELS
            effective = [channel for channel in effective if channel in allowed]

        if (
            preferences.frequency != NotificationFrequency.IMMEDIATE
            and priority != NotificationPriority.CRITICAL
        ):
            effective = [channel for channel in effective if channel in DEFERRED_CHANNELS]

        # Preserve request order, drop repeats
        return list(dict.fromkeys(effective))

    def get_preference_summary(
        self, user_id: str, now: Optional[datetime] = None
    ) -> PreferenceSummary:
        preferences = self.get_preferences(user_id)
        return PreferenceSummary(
            user_id=user_id,
            enabled_channels={
                k: v for k, v in preferences.channels.items() if v
            },
            quiet_hours_enabled=bool(
                preferences.quiet_hours and preferences.quiet_hours.enabled
            ),
            in_quiet_hours=self.quiet_window_active(preferences, now),
            frequency=preferences.frequency,
            language=preferences.language,
            timezone=preferences.timezone,
        )

    @staticmethod
    def _parse_update(
        updates: Union[PreferencesUpdate, Dict[str, Any]],
    ) -> PreferencesUpdate:
        if isinstance(updates, PreferencesUpdate):
            return updates
        try:
            return PreferencesUpdate.model_validate(updates)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid preferences") from exc

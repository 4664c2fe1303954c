"""Broadcast fan-out to resolved audience segments.

Every recipient is filtered independently by their own preferences. A
recipient with no effective channel is suppressed (no record is created); a
recipient whose creation raises is counted as failed and the broadcast
continues with the next one.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from infrastructure.logging import bind_request_context, get_module_logger
from modules.notifications.directory import UserDirectory
from modules.notifications.domain.errors import NotificationError, ValidationError
from modules.notifications.domain.models import (
    BroadcastMessage,
    BroadcastRecipientDetail,
    BroadcastResult,
    CreateNotificationRequest,
    Notification,
    NotificationPreferences,
    UserSegment,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import BroadcastOutcome
from modules.notifications.preferences import PreferenceResolver

logger = get_module_logger()

CreateFn = Callable[
    [CreateNotificationRequest, NotificationPreferences, datetime], Notification
]


class BroadcastResolver:
    """Resolves segments to recipients and runs the creation pipeline per recipient.

    Attributes:
        directory: UserDirectory resolving roles, locations and "all"
        preferences: PreferenceResolver for batch preference lookups
        create_fn: Creation pipeline (schedule, create, enqueue) for one recipient
    """

    def __init__(
        self,
        directory: UserDirectory,
        preferences: PreferenceResolver,
        create_fn: CreateFn,
    ) -> None:
        self.directory = directory
        self.preferences = preferences
        self.create_fn = create_fn

    def resolve_audience(self, segment: Union[UserSegment, Dict[str, Any]]) -> List[str]:
        """Resolve a segment to de-duplicated user ids, in resolution order.

        Precedence: explicit user_ids, then all, then roles and locations.
        Explicit ids are taken as given, without a directory lookup.
        """
        segment = self._parse(UserSegment, segment, "Invalid segment")
        if segment.user_ids:
            user_ids = list(segment.user_ids)
        elif segment.all:
            user_ids = self.directory.all_user_ids()
        else:
            user_ids = []
            if segment.roles:
                user_ids.extend(self.directory.user_ids_by_roles(segment.roles))
            if segment.locations:
                user_ids.extend(self.directory.user_ids_by_locations(segment.locations))
        return list(dict.fromkeys(user_ids))

    def send_broadcast(
        self,
        message: Union[BroadcastMessage, Dict[str, Any]],
        segment: Union[UserSegment, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> BroadcastResult:
        """Send one message to every recipient of the segment.

        Returns:
            BroadcastResult with sent / suppressed / failed counts and one
            detail entry per resolved recipient
        """
        message = self._parse(BroadcastMessage, message, "Invalid broadcast message")
        now = as_utc(now or utc_now())
        broadcast_id = str(uuid.uuid4())

        with bind_request_context(
            correlation_id=broadcast_id, notification_type=message.type.value
        ):
            recipients = self.resolve_audience(segment)
            result = BroadcastResult(
                broadcast_id=broadcast_id, total_recipients=len(recipients)
            )
            logger.info("broadcast_started", recipients=len(recipients))

            preferences = self.preferences.get_batch_preferences(recipients)
            for user_id in recipients:
                detail = self._send_to(message, user_id, preferences[user_id], now)
                result.details.append(detail)
                if detail.outcome == BroadcastOutcome.SENT:
                    result.sent += 1
                elif detail.outcome == BroadcastOutcome.SUPPRESSED:
                    result.suppressed += 1
                else:
                    result.failed += 1

            logger.info(
                "broadcast_completed",
                total=result.total_recipients,
                sent=result.sent,
                suppressed=result.suppressed,
                failed=result.failed,
            )
            return result

    def _send_to(
        self,
        message: BroadcastMessage,
        user_id: str,
        preferences: NotificationPreferences,
        now: datetime,
    ) -> BroadcastRecipientDetail:
        try:
            request = message.to_request(user_id)
            channels = self.preferences.determine_effective_channels(
                preferences, request.type, request.channels, request.priority, now
            )
            if not channels:
                logger.debug("broadcast_recipient_suppressed", recipient=user_id)
                return BroadcastRecipientDetail(
                    user_id=user_id, outcome=BroadcastOutcome.SUPPRESSED
                )

            notification = self.create_fn(request, preferences, now)
            return BroadcastRecipientDetail(
                user_id=user_id,
                outcome=BroadcastOutcome.SENT,
                notification_id=notification.id,
                channels=notification.channels,
                scheduled_at=notification.scheduled_at,
            )
        except NotificationError as exc:
            logger.warning(
                "broadcast_recipient_failed",
                recipient=user_id,
                error=exc.message,
                code=exc.code,
            )
            return BroadcastRecipientDetail(
                user_id=user_id, outcome=BroadcastOutcome.FAILED, error=exc.message
            )
        except Exception as exc:
            logger.error(
                "broadcast_recipient_exception",
                recipient=user_id,
                error=str(exc),
                exc_info=True,
            )
            return BroadcastRecipientDetail(
                user_id=user_id, outcome=BroadcastOutcome.FAILED, error=str(exc)
            )

    @staticmethod
    def _parse(model, value, prefix: str):
        if isinstance(value, model):
            return value
        try:
            return model.model_validate(value)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, prefix) from exc

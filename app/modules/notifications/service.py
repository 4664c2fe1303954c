"""Notification service facade.

Wires preferences, scheduling, creation, queueing, delivery workers and the
read side behind one class. Construct it explicitly (or through
``create_notification_service``) and pass it to callers; there is no
process-wide instance.

Usage:
    from infrastructure.services import get_settings
    from modules.notifications.service import create_notification_service

    service = create_notification_service(get_settings())
    notification = service.create_notification(
        {
            "user_id": "user-1",
            "type": "BOOKING_CONFIRMATION",
            "title": "Booking confirmed",
            "content": "See you on Friday",
            "channels": ["IN_APP", "EMAIL"],
        }
    )
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from infrastructure.configuration import Settings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from modules.notifications.broadcast import BroadcastResolver
from modules.notifications.channels import (
    ChannelHandler,
    InAppChannelHandler,
    Transport,
    TransportChannelHandler,
)
from modules.notifications.constants import QUEUE_NAMES
from modules.notifications.directory import InMemoryUserDirectory, UserDirectory
from modules.notifications.domain.errors import NotificationError, wrap_storage_errors
from modules.notifications.domain.models import (
    BatchCreateError,
    BatchCreateResult,
    BroadcastMessage,
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
    UserSegment,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import DeliveryChannel, NotificationStatus
from modules.notifications.factory import NotificationFactory
from modules.notifications.lifecycle import LifecycleTracker
from modules.notifications.preferences import PreferenceResolver
from modules.notifications.queries import NotificationQueries
from modules.notifications.queue.broker import InMemoryQueueBroker, QueueBroker
from modules.notifications.queue.config import QueueConfig
from modules.notifications.queue.orchestrator import DeliveryQueueOrchestrator
from modules.notifications.queue.worker import ChannelWorker, build_workers
from modules.notifications.scheduler import FrequencyScheduler
from modules.notifications.store import (
    InMemoryNotificationStore,
    InMemoryPreferencesStore,
    NotificationStore,
    PreferencesStore,
)

logger = get_module_logger()


class NotificationService:
    """Class-based notification service.

    Every collaborator is injectable; omitted ones default to the in-memory
    implementations, which suit single-process deployments and tests.

    Attributes:
        preferences: PreferenceResolver
        scheduler: FrequencyScheduler
        factory: NotificationFactory
        lifecycle: LifecycleTracker
        queries: NotificationQueries
        orchestrator: DeliveryQueueOrchestrator
        broadcasts: BroadcastResolver
        workers: ChannelWorker per channel that has a handler
    """

    def __init__(
        self,
        settings: Settings,
        notification_store: Optional[NotificationStore] = None,
        preferences_store: Optional[PreferencesStore] = None,
        directory: Optional[UserDirectory] = None,
        broker: Optional[QueueBroker] = None,
        transports: Optional[Dict[DeliveryChannel, Transport]] = None,
        handlers: Optional[List[ChannelHandler]] = None,
        queue_config: Optional[QueueConfig] = None,
    ) -> None:
        """Initialize the notification service.

        Args:
            settings: Settings instance (required, passed from provider).
            notification_store: Storage for notification records.
            preferences_store: Storage for per-user preferences.
            directory: UserDirectory for broadcast segments.
            broker: QueueBroker holding the channel queues.
            transports: External senders for PUSH, EMAIL and SMS. Channels
                without a transport get no worker and their jobs wait in
                the queue.
            handlers: Explicit channel handlers; overrides ``transports``.
            queue_config: Overrides the queue configuration from settings.
        """
        self._settings = settings
        feature = settings.notifications
        self.queue_config = queue_config or QueueConfig.from_settings(settings.queue)

        self.store = notification_store or InMemoryNotificationStore()
        self.preferences = PreferenceResolver(preferences_store or InMemoryPreferencesStore())
        self.scheduler = FrequencyScheduler(daily_hour=feature.daily_digest_hour)
        self.factory = NotificationFactory(
            self.store,
            self.preferences,
            duplicate_window_seconds=feature.duplicate_window_seconds,
            max_title_length=feature.max_title_length,
            max_content_length=feature.max_content_length,
            default_ttl_hours=feature.default_ttl_hours,
        )
        self.lifecycle = LifecycleTracker(self.store)
        self.queries = NotificationQueries(
            self.store,
            default_page_size=feature.default_page_size,
            max_page_size=feature.max_page_size,
        )

        self.broker = broker or InMemoryQueueBroker(
            QUEUE_NAMES.values(),
            keep_completed=self.queue_config.keep_completed,
            keep_failed=self.queue_config.keep_failed,
        )
        self.orchestrator = DeliveryQueueOrchestrator(
            self.broker, config=self.queue_config, queue_names=QUEUE_NAMES
        )

        if handlers is None:
            handlers = [InAppChannelHandler()]
            for channel, transport in (transports or {}).items():
                handlers.append(TransportChannelHandler(channel, transport))
        self.workers: Dict[DeliveryChannel, ChannelWorker] = build_workers(
            handlers,
            self.broker,
            QUEUE_NAMES,
            self.store,
            self.lifecycle,
            self.queue_config,
        )

        self.directory = directory or InMemoryUserDirectory()
        self.broadcasts = BroadcastResolver(
            self.directory, self.preferences, self._create_with_preferences
        )

    # Creation

    def create_notification(
        self,
        request: Union[CreateNotificationRequest, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> Notification:
        """Record a notification and enqueue its delivery.

        The record is always persisted once validation passes. Enqueue
        problems (broker down, rate limits) are logged and reflected on the
        record, never raised.

        Raises:
            ValidationError: Invalid request
            DuplicateError: Same (user, type, title) within the duplicate window
        """
        request = self.factory.parse_request(request)
        preferences = self.preferences.get_preferences(request.user_id)
        return self._create_with_preferences(request, preferences, now)

    def create_batch_notifications(
        self,
        requests: Iterable[Union[CreateNotificationRequest, Dict[str, Any]]],
        now: Optional[datetime] = None,
    ) -> BatchCreateResult:
        """Create several notifications and enqueue them as batched jobs.

        Each request is validated and persisted independently; failures are
        reported per index. Pending records sharing (user, type, channels)
        are delivered as one batch job per channel.
        """
        now = as_utc(now or utc_now())
        result = BatchCreateResult()
        for index, raw in enumerate(requests):
            user_id = raw.get("user_id") if isinstance(raw, dict) else raw.user_id
            try:
                request = self.factory.parse_request(raw)
                preferences = self.preferences.get_preferences(request.user_id)
                deferred = self.scheduler.apply_frequency_scheduling(
                    request, preferences, now
                )
                result.created.append(
                    self.factory.create_notification(
                        request, preferences, deferred_until=deferred, now=now
                    )
                )
            except NotificationError as exc:
                result.errors.append(
                    BatchCreateError(
                        index=index, user_id=user_id, code=exc.code, message=exc.message
                    )
                )

        enqueued = self.orchestrator.add_batch_jobs(result.created, now)
        if enqueued.is_success:
            dropped = enqueued.data["dropped"]
            result.created = [
                self._apply_rate_limit(n, dropped.get(n.id)) for n in result.created
            ]
        else:
            logger.warning(
                "batch_enqueue_deferred",
                created=len(result.created),
                status=enqueued.status.value,
                message=enqueued.message,
            )

        logger.info(
            "batch_notifications_created",
            created=len(result.created),
            errors=len(result.errors),
        )
        return result

    def _create_with_preferences(
        self,
        request: CreateNotificationRequest,
        preferences: NotificationPreferences,
        now: Optional[datetime] = None,
    ) -> Notification:
        now = as_utc(now or utc_now())
        deferred = self.scheduler.apply_frequency_scheduling(request, preferences, now)
        notification = self.factory.create_notification(
            request, preferences, deferred_until=deferred, now=now
        )
        if notification.status != NotificationStatus.PENDING:
            return notification

        enqueued = self.orchestrator.add_notification_job(notification, now)
        if not enqueued.is_success:
            logger.warning(
                "enqueue_deferred",
                notification_id=notification.id,
                status=enqueued.status.value,
                message=enqueued.message,
            )
            return notification
        return self._apply_rate_limit(
            notification, enqueued.data["dropped"].get(notification.id)
        )

    def _apply_rate_limit(
        self, notification: Notification, dropped: Optional[List[str]]
    ) -> Notification:
        """Remove rate-limited channels from a pending notification."""
        if not dropped:
            return notification
        remaining = [c for c in notification.channels if c.value not in dropped]
        changes: Dict[str, Any] = {
            "channels": remaining,
            "data": {
                **notification.data,
                "effective_channels": [c.value for c in remaining],
                "rate_limited_channels": dropped,
            },
        }
        if not remaining:
            changes["status"] = NotificationStatus.SENT
        updated = self.store.update_if_status(
            notification.id, [NotificationStatus.PENDING], changes
        )
        return updated or notification

    # Read side

    def get_notifications(
        self,
        user_id: str,
        filters: Union[NotificationFilters, Dict[str, Any], None] = None,
    ) -> NotificationPage:
        return self.queries.get_notifications(user_id, filters)

    def get_notification(self, user_id: str, notification_id: str) -> Notification:
        return self.lifecycle.get_owned(user_id, notification_id)

    def get_unread_count(self, user_id: str) -> int:
        return self.queries.get_unread_count(user_id)

    def get_notification_stats(self, user_id: str) -> NotificationStats:
        return self.queries.get_notification_stats(user_id)

    # Lifecycle

    def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        return self.lifecycle.mark_as_read(user_id, notification_id)

    def mark_all_as_read(self, user_id: str) -> int:
        return self.lifecycle.mark_all_as_read(user_id)

    def mark_multiple_as_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
        return self.lifecycle.mark_multiple_as_read(user_id, notification_ids)

    def delete_notification(self, user_id: str, notification_id: str) -> None:
        self.lifecycle.delete_notification(user_id, notification_id)

    def delete_multiple(self, user_id: str, notification_ids: Iterable[str]) -> int:
        return self.lifecycle.delete_multiple(user_id, notification_ids)

    def cleanup_expired_notifications(self, now: Optional[datetime] = None) -> int:
        return self.lifecycle.cleanup_expired(now)

    # Preferences

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        return self.preferences.get_preferences(user_id)

    def get_preference_summary(self, user_id: str) -> PreferenceSummary:
        return self.preferences.get_preference_summary(user_id)

    def update_preferences(
        self,
        user_id: str,
        updates: Union[PreferencesUpdate, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> NotificationPreferences:
        """Update preferences and apply them to the user's pending notifications."""
        preferences = self.preferences.update_preferences(user_id, updates)
        self.apply_preferences_to_pending(user_id, preferences, now)
        return preferences

    def reset_preferences(
        self, user_id: str, now: Optional[datetime] = None
    ) -> NotificationPreferences:
        preferences = self.preferences.reset_to_defaults(user_id)
        self.apply_preferences_to_pending(user_id, preferences, now)
        return preferences

    @wrap_storage_errors("Failed to apply preferences", "UPDATE_FAILED")
    def apply_preferences_to_pending(
        self,
        user_id: str,
        preferences: NotificationPreferences,
        now: Optional[datetime] = None,
    ) -> int:
        """Narrow the channels of the user's PENDING notifications.

        Channels are only ever removed; jobs already in flight are not
        recalled, and workers skip jobs whose channel was removed. Each write
        is conditional on the record still being PENDING.

        Returns:
            Number of notifications updated
        """
        now = as_utc(now or utc_now())
        updated = 0
        for notification in self.store.list_for_user(user_id):
            if notification.status != NotificationStatus.PENDING:
                continue
            requested = [
                DeliveryChannel(c)
                for c in notification.data.get(
                    "original_channels", [c.value for c in notification.channels]
                )
            ]
            allowed = set(
                self.preferences.determine_effective_channels(
                    preferences, notification.type, requested, notification.priority, now
                )
            )
            narrowed = [c for c in notification.channels if c in allowed]
            if narrowed == notification.channels:
                continue

            changes: Dict[str, Any] = {
                "channels": narrowed,
                "data": {
                    **notification.data,
                    "effective_channels": [c.value for c in narrowed],
                },
            }
            if not narrowed:
                changes["status"] = NotificationStatus.SENT
            if self.store.update_if_status(
                notification.id, [NotificationStatus.PENDING], changes
            ):
                updated += 1

        if updated:
            logger.info(
                "pending_notifications_rescoped", user_id=user_id, updated=updated
            )
        return updated

    # Broadcasts

    def send_broadcast(
        self,
        message: Union[BroadcastMessage, Dict[str, Any]],
        segment: Union[UserSegment, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> BroadcastResult:
        return self.broadcasts.send_broadcast(message, segment, now)

    # Queues

    def get_queue_stats(self) -> QueueStats:
        return self.orchestrator.get_queue_stats()

    def pause_queue(self, queue_name: Optional[str] = None) -> OperationResult:
        return self.orchestrator.pause_queue(queue_name)

    def resume_queue(self, queue_name: Optional[str] = None) -> OperationResult:
        return self.orchestrator.resume_queue(queue_name)

    def clean_queue(
        self, queue_name: Optional[str] = None, grace_seconds: Optional[int] = None
    ) -> OperationResult:
        return self.orchestrator.clean_queue(queue_name, grace_seconds)

    def retry_failed_job(self, job_id: str) -> OperationResult:
        return self.orchestrator.retry_failed_job(job_id)

    def process_queues(self, now: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        """Run every channel worker once, synchronously."""
        return {
            channel.value: worker.run_once(now) for channel, worker in self.workers.items()
        }

    def start_workers(self) -> None:
        for worker in self.workers.values():
            worker.start()

    def stop_workers(self, timeout: Optional[float] = None) -> None:
        for worker in self.workers.values():
            worker.stop(timeout)

    def health_check(self) -> Dict[str, OperationResult]:
        return {
            channel.value: worker.handler.health_check()
            for channel, worker in self.workers.items()
        }


def create_notification_service(
    settings: Optional[Settings] = None, **overrides: Any
) -> NotificationService:
    """Build a NotificationService from settings.

    Args:
        settings: Settings instance; resolved from the cached provider when
            omitted.
        **overrides: Collaborators forwarded to NotificationService.

    Returns:
        A new NotificationService. Callers own its lifetime.
    """
    if settings is None:
        from infrastructure.services.providers import get_settings

        settings = get_settings()
    service = NotificationService(settings, **overrides)
    logger.info(
        "notification_service_created",
        workers=[channel.value for channel in service.workers],
        is_production=settings.is_production,
    )
    return service

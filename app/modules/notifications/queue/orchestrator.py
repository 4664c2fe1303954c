"""Fan-out of notifications to per-channel delivery queues.

The orchestrator owns the four channel queues. It applies per-user rate
limits before enqueueing, batches near-duplicate pending notifications, and
degrades to a logged no-op whenever the broker reports UNAVAILABLE.
"""

from datetime import datetime
from typing import Dict, List, Optional

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, OperationStatus
from modules.notifications.constants import QUEUE_NAMES
from modules.notifications.domain.errors import QueueError
from modules.notifications.domain.models import Notification, QueueStats
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import (
    DeliveryChannel,
    JobState,
    NotificationStatus,
)
from modules.notifications.queue.batching import (
    DeliveryUnit,
    build_delivery_units,
    single_unit,
)
from modules.notifications.queue.broker import QueueBroker
from modules.notifications.queue.config import QueueConfig
from modules.notifications.queue.models import Job
from modules.notifications.queue.rate_limiter import SlidingWindowRateLimiter

logger = get_module_logger()

STAT_FIELDS = ("waiting", "active", "completed", "failed", "delayed")
MANAGE_EVENTS = {
    "pause": "queues_paused",
    "resume": "queues_resumed",
    "clean": "queues_cleaned",
}


class DeliveryQueueOrchestrator:
    """Enqueues delivery jobs and manages the channel queues.

    Results carry, under ``data``:
        jobs: {channel value: [job ids]} actually enqueued
        dropped: {notification id: [channel values]} removed by rate limits
        batches: number of batch jobs built (add_batch_jobs only)
        failed: {channel value: message} for channel queues that rejected
            their jobs while other channels were enqueued

    Attributes:
        broker: QueueBroker holding the channel queues
        rate_limiter: Per-user, per-channel sliding-window limiter
        config: QueueConfig with retry and retention policy
        queue_names: Queue name per channel
    """

    def __init__(
        self,
        broker: QueueBroker,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        config: Optional[QueueConfig] = None,
        queue_names: Optional[Dict[DeliveryChannel, str]] = None,
    ) -> None:
        self.broker = broker
        self.config = config or QueueConfig()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            self.config.rate_limits, self.config.rate_limit_window_seconds
        )
        self.queue_names = dict(queue_names or QUEUE_NAMES)

    def queue_for(self, channel: DeliveryChannel) -> str:
        return self.queue_names[channel]

    def add_notification_job(
        self, notification: Notification, now: Optional[datetime] = None
    ) -> OperationResult:
        """Enqueue one job per effective channel of a pending notification."""
        if notification.status != NotificationStatus.PENDING or not notification.channels:
            logger.debug(
                "enqueue_skipped_not_pending",
                notification_id=notification.id,
                status=notification.status.value,
            )
            return OperationResult.success(
                data={"jobs": {}, "dropped": {}, "batches": 0, "failed": {}},
                message="nothing to enqueue",
            )
        return self._enqueue_units([single_unit(notification)], now, batches=0)

    def add_batch_jobs(
        self, notifications: List[Notification], now: Optional[datetime] = None
    ) -> OperationResult:
        """Batch pending notifications by (user, type, channels) and enqueue them."""
        pending = [
            n
            for n in notifications
            if n.status == NotificationStatus.PENDING and n.channels
        ]
        units = build_delivery_units(pending)
        batches = sum(1 for unit in units if unit.is_batch)
        if batches:
            logger.info(
                "notifications_batched",
                notifications=len(pending),
                units=len(units),
                batches=batches,
            )
        return self._enqueue_units(units, now, batches=batches)

    def retry_failed_job(self, job_id: str) -> OperationResult:
        """Find a failed job by id in any channel queue and re-queue it."""
        for channel, queue_name in self.queue_names.items():
            found = self.broker.get_job(queue_name, job_id)
            if found.is_unavailable:
                logger.warning("queue_unavailable", operation="retry_failed_job")
                return found
            if not found.is_success or found.data.state != JobState.FAILED:
                continue
            result = self.broker.retry_job(queue_name, job_id)
            if result.is_success:
                logger.info(
                    "failed_job_retried",
                    job_id=job_id,
                    queue=queue_name,
                    channel=channel.value,
                )
            return result

        logger.warning("failed_job_not_found", job_id=job_id)
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"Failed job {job_id} not found",
            error_code="JOB_NOT_FOUND",
        )

    def get_queue_stats(self) -> QueueStats:
        """Sum job counts across channel queues; zeros when the broker is down."""
        totals = {name: 0 for name in STAT_FIELDS}
        per_queue: Dict[str, Dict[str, int]] = {}
        for queue_name in self.queue_names.values():
            result = self.broker.get_counts(queue_name)
            if not result.is_success:
                logger.warning(
                    "queue_unavailable",
                    operation="get_queue_stats",
                    queue=queue_name,
                    status=result.status.value,
                    message=result.message,
                )
                return QueueStats(available=False)
            counts = {name: int(result.data.get(name, 0)) for name in STAT_FIELDS}
            per_queue[queue_name] = counts
            for name, value in counts.items():
                totals[name] += value
        return QueueStats(**totals, queues=per_queue)

    def pause_queue(self, queue_name: Optional[str] = None) -> OperationResult:
        return self._manage("pause", queue_name, lambda q: self.broker.pause(q))

    def resume_queue(self, queue_name: Optional[str] = None) -> OperationResult:
        return self._manage("resume", queue_name, lambda q: self.broker.resume(q))

    def clean_queue(
        self,
        queue_name: Optional[str] = None,
        grace_seconds: Optional[int] = None,
    ) -> OperationResult:
        """Remove completed and failed jobs older than the grace period."""
        grace = (
            self.config.clean_grace_seconds if grace_seconds is None else grace_seconds
        )
        return self._manage("clean", queue_name, lambda q: self.broker.clean(q, grace))

    def _manage(self, operation: str, queue_name: Optional[str], action) -> OperationResult:
        """Apply a management action to one queue or to every queue.

        Raises:
            QueueError: ``queue_name`` is not one of the channel queues
        """
        if queue_name is not None and queue_name not in self.queue_names.values():
            raise QueueError(
                f"Unknown queue: {queue_name}",
                details={"queues": list(self.queue_names.values())},
            )
        targets = [queue_name] if queue_name else list(self.queue_names.values())
        outcome: Dict[str, object] = {}
        for target in targets:
            result = action(target)
            if result.is_unavailable:
                logger.warning("queue_unavailable", operation=operation, queue=target)
                return result
            if not result.is_success:
                logger.warning(
                    "queue_operation_failed",
                    operation=operation,
                    queue=target,
                    message=result.message,
                )
                return result
            outcome[target] = result.data
        logger.info(MANAGE_EVENTS[operation], queues=targets)
        return OperationResult.success(data=outcome, message=f"{operation} applied")

    def _enqueue_units(
        self, units: List[DeliveryUnit], now: Optional[datetime], batches: int
    ) -> OperationResult:
        now = as_utc(now or utc_now())
        jobs_by_channel: Dict[DeliveryChannel, List[Job]] = {}
        dropped: Dict[str, List[str]] = {}

        for unit in units:
            accepted, rejected = self.rate_limiter.acquire_channels(
                unit.user_id, unit.channels, now
            )
            if rejected:
                for notification_id in unit.notification_ids:
                    dropped[notification_id] = [c.value for c in rejected]
            if not accepted:
                logger.warning(
                    "enqueue_skipped_rate_limited",
                    unit_id=unit.id,
                    user_id=unit.user_id,
                    channels=[c.value for c in rejected],
                )
                continue
            for channel in accepted:
                jobs_by_channel.setdefault(channel, []).append(self._build_job(unit, channel, now))

        enqueued: Dict[str, List[str]] = {}
        failures: Dict[str, OperationResult] = {}
        for channel, jobs in jobs_by_channel.items():
            queue_name = self.queue_for(channel)
            result = (
                self.broker.add(queue_name, jobs[0])
                if len(jobs) == 1
                else self.broker.add_bulk(queue_name, jobs)
            )
            if not result.is_success:
                # Other channels still enqueue
                for job in jobs:
                    self.rate_limiter.release(job.user_id, channel)
                logger.warning(
                    "queue_unavailable" if result.is_unavailable else "enqueue_failed",
                    operation="enqueue",
                    queue=queue_name,
                    jobs=len(jobs),
                    message=result.message,
                )
                failures[channel.value] = result
                continue
            ids = result.data if isinstance(result.data, list) else [result.data]
            enqueued[channel.value] = ids
            logger.info(
                "jobs_enqueued",
                queue=queue_name,
                count=len(ids),
            )

        if failures and not enqueued:
            unavailable = [r for r in failures.values() if r.is_unavailable]
            if unavailable:
                return OperationResult.unavailable(unavailable[0].message)
            return next(iter(failures.values()))

        return OperationResult.success(
            data={
                "jobs": enqueued,
                "dropped": dropped,
                "batches": batches,
                "failed": {channel: r.message for channel, r in failures.items()},
            },
            message="jobs enqueued",
        )

    def _build_job(self, unit: DeliveryUnit, channel: DeliveryChannel, now: datetime) -> Job:
        available_at = now
        if unit.scheduled_at is not None and unit.scheduled_at > now:
            available_at = unit.scheduled_at
        job = Job(
            channel=channel,
            user_id=unit.user_id,
            notification_type=unit.notification_type,
            notification_ids=list(unit.notification_ids),
            priority=unit.priority,
            payload=dict(unit.payload),
            max_attempts=self.config.max_attempts,
            backoff_delay_seconds=self.config.backoff_delay_seconds,
            created_at=now,
            available_at=available_at,
        )
        if unit.is_batch:
            job.id = unit.id
        return job

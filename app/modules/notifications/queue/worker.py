"""Channel workers.

One worker drains one channel queue with a bounded thread pool. Delivery
outcomes are written back to the notification through the lifecycle
tracker; exhausted retries are recorded on the notification, never raised.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from infrastructure.logging import bind_request_context, get_module_logger
from infrastructure.operations import (
    OperationResult,
    OperationStatus,
    classify_transport_error,
)
from modules.notifications.channels.base import ChannelHandler
from modules.notifications.domain.models import Notification
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.lifecycle import LifecycleTracker
from modules.notifications.queue.broker import QueueBroker
from modules.notifications.queue.config import QueueConfig
from modules.notifications.queue.models import Job
from modules.notifications.store import NotificationStore

logger = get_module_logger()


class JobOutcome(Enum):
    """Outcome of processing one job.

    Values:
        DELIVERED: Handler succeeded, notifications marked DELIVERED
        RETRIED: Attempt failed, job rescheduled with backoff
        FAILED: Attempts exhausted or permanent error, notifications marked FAILED
        SKIPPED: Nothing left to deliver on this channel
        UNAVAILABLE: Broker could not record the outcome
    """

    DELIVERED = "delivered"
    RETRIED = "retried"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNAVAILABLE = "unavailable"


def _empty_stats() -> Dict[str, int]:
    stats = {"processed": 0}
    stats.update({outcome.value: 0 for outcome in JobOutcome})
    return stats


class ChannelWorker:
    """Processes jobs from one channel queue.

    Attributes:
        handler: ChannelHandler performing delivery
        broker: QueueBroker holding the channel queue
        queue_name: Name of the channel queue
        store: NotificationStore used to re-read source notifications
        lifecycle: LifecycleTracker receiving delivery outcomes
        config: QueueConfig with concurrency and poll interval
    """

    def __init__(
        self,
        handler: ChannelHandler,
        broker: QueueBroker,
        queue_name: str,
        store: NotificationStore,
        lifecycle: LifecycleTracker,
        config: Optional[QueueConfig] = None,
    ) -> None:
        self.handler = handler
        self.broker = broker
        self.queue_name = queue_name
        self.store = store
        self.lifecycle = lifecycle
        self.config = config or QueueConfig()
        self.channel = handler.channel
        self.log = logger.bind(channel=self.channel.value, queue=queue_name)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Drain every job currently available, ``concurrency`` at a time.

        Jobs rescheduled with backoff during this run are left for later runs.

        Returns:
            Dictionary with processing statistics:
                - processed: Jobs handled
                - delivered / retried / failed / skipped / unavailable:
                  count per JobOutcome
        """
        stats = _empty_stats()
        with ThreadPoolExecutor(
            max_workers=self.config.concurrency,
            thread_name_prefix=f"worker-{self.channel.value.lower()}",
        ) as executor:
            while True:
                jobs = self._fetch_jobs(now)
                if not jobs:
                    break
                for outcome in executor.map(self.process_job, jobs):
                    stats["processed"] += 1
                    stats[outcome.value] += 1

        if stats["processed"]:
            self.log.info("worker_run_complete", **stats)
        return stats

    def process_job(self, job: Job) -> JobOutcome:
        """Deliver one job and record the outcome on the queue and notifications."""
        with bind_request_context(correlation_id=job.id, user_id=job.user_id):
            notifications = self._deliverable_notifications(job)
            if not notifications:
                self.broker.complete(self.queue_name, job.id)
                self.log.info(
                    "job_skipped",
                    job_id=job.id,
                    notification_ids=job.notification_ids,
                )
                return JobOutcome.SKIPPED

            try:
                result = self.handler.deliver(job, notifications)
            except Exception as exc:
                self.log.error(
                    "channel_handler_exception",
                    job_id=job.id,
                    error=str(exc),
                    exc_info=True,
                )
                result = classify_transport_error(exc)

            if result.is_success:
                return self._on_success(job, notifications)
            return self._on_failure(job, notifications, result)

    def start(self) -> None:
        """Run ``run_once`` in a background thread until ``stop`` is called."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name=f"channel-worker-{self.channel.value.lower()}",
            daemon=True,
        )
        self._thread.start()
        self.log.info("worker_started", concurrency=self.config.concurrency)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.log.info("worker_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            stats = self.run_once()
            if not stats["processed"]:
                self._stop_event.wait(self.config.poll_interval_seconds)

    def _fetch_jobs(self, now: Optional[datetime]) -> List[Job]:
        jobs: List[Job] = []
        while len(jobs) < self.config.concurrency:
            result = self.broker.fetch_next(self.queue_name, now)
            if not result.is_success:
                self.log.warning(
                    "queue_unavailable",
                    operation="fetch_next",
                    status=result.status.value,
                    message=result.message,
                )
                break
            if result.data is None:
                break
            jobs.append(result.data)
        return jobs

    def _deliverable_notifications(self, job: Job) -> List[Notification]:
        """Source notifications that still exist and still target this channel.

        Preference updates can narrow a pending notification's channels after
        its jobs were enqueued; such jobs are skipped rather than recalled.
        """
        now = as_utc(utc_now())
        deliverable = []
        for notification_id in job.notification_ids:
            notification = self.store.get(notification_id)
            if notification is None or notification.is_expired(now):
                continue
            if self.channel not in notification.channels:
                continue
            deliverable.append(notification)
        return deliverable

    def _on_success(self, job: Job, notifications: List[Notification]) -> JobOutcome:
        completed = self.broker.complete(self.queue_name, job.id)
        for notification in notifications:
            self.lifecycle.mark_as_delivered(notification.id)
        if not completed.is_success:
            self.log.warning("job_completion_not_recorded", job_id=job.id)
            return JobOutcome.UNAVAILABLE
        self.log.info(
            "job_delivered",
            job_id=job.id,
            notifications=len(notifications),
            attempt=job.attempts + 1,
        )
        return JobOutcome.DELIVERED

    def _on_failure(
        self,
        job: Job,
        notifications: List[Notification],
        result: OperationResult,
    ) -> JobOutcome:
        retryable = result.status != OperationStatus.PERMANENT_ERROR
        failed = self.broker.fail(
            self.queue_name, job.id, result.message, retryable=retryable
        )
        if not failed.is_success:
            self.log.warning("job_failure_not_recorded", job_id=job.id)
            return JobOutcome.UNAVAILABLE

        if not failed.data["final"]:
            self.log.info(
                "job_delivery_retry",
                job_id=job.id,
                attempts=failed.data["attempts"],
                retry_at=failed.data["retry_at"].isoformat(),
                reason=result.message,
            )
            return JobOutcome.RETRIED

        for notification in notifications:
            self.lifecycle.mark_as_failed(notification.id, self.channel, result.message)
        self.log.error(
            "job_delivery_failed",
            job_id=job.id,
            attempts=failed.data["attempts"],
            reason=result.message,
            error_code=result.error_code,
        )
        return JobOutcome.FAILED


def build_workers(
    handlers: List[ChannelHandler],
    broker: QueueBroker,
    queue_names: Dict,
    store: NotificationStore,
    lifecycle: LifecycleTracker,
    config: Optional[QueueConfig] = None,
) -> Dict:
    """Create one ChannelWorker per handler, keyed by channel."""
    return {
        handler.channel: ChannelWorker(
            handler,
            broker,
            queue_names[handler.channel],
            store,
            lifecycle,
            config,
        )
        for handler in handlers
    }

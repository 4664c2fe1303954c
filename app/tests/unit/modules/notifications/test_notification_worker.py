"""Unit tests for ChannelWorker.

Tests cover:
- Successful delivery and status write-back
- Retry with exponential backoff and final failure
- Permanent errors
- Skipping jobs whose channel was removed
- Batch jobs, concurrency and background lifecycle
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from infrastructure.operations import OperationResult
from modules.notifications.channels import InAppChannelHandler, TransportChannelHandler
from modules.notifications.constants import QUEUE_NAMES
from modules.notifications.domain.types import (
    DeliveryChannel,
    JobState,
    NotificationStatus,
)
from modules.notifications.queue.config import QueueConfig
from modules.notifications.queue.orchestrator import DeliveryQueueOrchestrator
from modules.notifications.queue.worker import ChannelWorker, JobOutcome, build_workers

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
PUSH = DeliveryChannel.PUSH
PUSH_QUEUE = QUEUE_NAMES[PUSH]


@pytest.fixture
def config():
    return QueueConfig(max_attempts=3, backoff_delay_seconds=2, concurrency=10)


@pytest.fixture
def orchestrator(broker, config):
    return DeliveryQueueOrchestrator(broker, config=config)


@pytest.fixture
def transport():
    return MagicMock(return_value=None)


@pytest.fixture
def push_worker(broker, notification_store, lifecycle, config, transport):
    return ChannelWorker(
        TransportChannelHandler(PUSH, transport),
        broker,
        PUSH_QUEUE,
        notification_store,
        lifecycle,
        config,
    )


@pytest.fixture
def enqueued(notification_store, notification_factory, orchestrator):
    """Persist a pending notification and enqueue its jobs."""

    def _enqueue(**overrides):
        notification = notification_store.save(notification_factory(**overrides))
        result = orchestrator.add_notification_job(notification, NOW)
        return notification, result

    return _enqueue


@pytest.mark.unit
class TestDelivery:
    def test_success_marks_delivered(
        self, push_worker, enqueued, notification_store, broker, transport
    ):
        notification, result = enqueued(channels=[PUSH])

        stats = push_worker.run_once()

        assert stats["processed"] == 1
        assert stats["delivered"] == 1
        assert notification_store.get(notification.id).status == NotificationStatus.DELIVERED
        job_id = result.data["jobs"]["PUSH"][0]
        assert broker.get_job(PUSH_QUEUE, job_id).data.state == JobState.COMPLETED
        job, notifications = transport.call_args.args
        assert job.id == job_id
        assert [n.id for n in notifications] == [notification.id]

    def test_batch_job_delivers_every_member(
        self, push_worker, notification_store, notification_factory, orchestrator, transport
    ):
        group = [
            notification_store.save(
                notification_factory(channels=[PUSH], title=f"Message {i}")
            )
            for i in range(3)
        ]
        orchestrator.add_batch_jobs(group, NOW)

        stats = push_worker.run_once()

        assert stats["delivered"] == 1
        assert transport.call_count == 1
        assert all(
            notification_store.get(n.id).status == NotificationStatus.DELIVERED
            for n in group
        )

    def test_drains_more_jobs_than_concurrency(
        self, broker, notification_store, lifecycle, notification_factory, orchestrator, transport
    ):
        worker = ChannelWorker(
            TransportChannelHandler(PUSH, transport),
            broker,
            PUSH_QUEUE,
            notification_store,
            lifecycle,
            QueueConfig(concurrency=3),
        )
        for i in range(7):
            notification = notification_store.save(
                notification_factory(channels=[PUSH], user_id=f"user-{i}")
            )
            orchestrator.add_notification_job(notification, NOW)

        stats = worker.run_once()

        assert stats["processed"] == 7
        assert stats["delivered"] == 7


@pytest.mark.unit
class TestFailures:
    def test_retries_with_backoff_then_fails(
        self, push_worker, enqueued, notification_store, transport
    ):
        transport.side_effect = ConnectionError("gateway down")

        with freeze_time("2024-01-15 12:00:00") as frozen:
            notification, _ = enqueued(channels=[PUSH])

            assert push_worker.run_once()["retried"] == 1
            assert notification_store.get(notification.id).status == NotificationStatus.PENDING

            frozen.move_to("2024-01-15 12:00:01")
            assert push_worker.run_once()["processed"] == 0

            frozen.move_to("2024-01-15 12:00:02")
            assert push_worker.run_once()["retried"] == 1

            frozen.move_to("2024-01-15 12:00:06")
            assert push_worker.run_once()["failed"] == 1

        failed = notification_store.get(notification.id)
        assert failed.status == NotificationStatus.FAILED
        assert failed.data["failed_channel"] == "PUSH"
        assert "gateway down" in failed.data["error"]
        assert transport.call_count == 3

    def test_permanent_error_fails_immediately(
        self, push_worker, enqueued, notification_store, transport
    ):
        transport.side_effect = ValueError("invalid device token")
        notification, _ = enqueued(channels=[PUSH])

        stats = push_worker.run_once()

        assert stats["failed"] == 1
        assert transport.call_count == 1
        assert notification_store.get(notification.id).status == NotificationStatus.FAILED

    def test_transient_result_is_retried(self, push_worker, enqueued, transport):
        transport.return_value = OperationResult.transient_error("throttled")
        enqueued(channels=[PUSH])

        assert push_worker.run_once()["retried"] == 1

    def test_failure_after_other_channel_delivered(
        self,
        push_worker,
        enqueued,
        broker,
        notification_store,
        lifecycle,
        config,
        transport,
    ):
        transport.side_effect = ValueError("invalid device token")
        in_app_worker = ChannelWorker(
            InAppChannelHandler(),
            broker,
            QUEUE_NAMES[DeliveryChannel.IN_APP],
            notification_store,
            lifecycle,
            config,
        )
        notification, _ = enqueued(channels=[DeliveryChannel.IN_APP, PUSH])

        in_app_worker.run_once()
        push_worker.run_once()

        stored = notification_store.get(notification.id)
        assert stored.status == NotificationStatus.DELIVERED
        assert stored.data["failed_channel"] == "PUSH"


@pytest.mark.unit
class TestSkipping:
    def test_job_skipped_when_channel_removed(
        self, push_worker, enqueued, notification_store, broker, transport
    ):
        notification, result = enqueued(channels=[DeliveryChannel.IN_APP, PUSH])
        notification_store.update(notification.id, {"channels": [DeliveryChannel.IN_APP]})

        stats = push_worker.run_once()

        assert stats["skipped"] == 1
        transport.assert_not_called()
        job_id = result.data["jobs"]["PUSH"][0]
        assert broker.get_job(PUSH_QUEUE, job_id).data.state == JobState.COMPLETED

    def test_job_skipped_when_notification_deleted(
        self, push_worker, enqueued, notification_store, transport
    ):
        notification, _ = enqueued(channels=[PUSH])
        notification_store.delete(notification.id)

        assert push_worker.process_job(
            push_worker.broker.fetch_next(PUSH_QUEUE).data
        ) == JobOutcome.SKIPPED
        transport.assert_not_called()


@pytest.mark.unit
class TestWorkerLifecycle:
    def test_background_worker_starts_and_stops(
        self, broker, notification_store, lifecycle, enqueued, transport
    ):
        worker = ChannelWorker(
            TransportChannelHandler(PUSH, transport),
            broker,
            PUSH_QUEUE,
            notification_store,
            lifecycle,
            QueueConfig(poll_interval_seconds=0.01),
        )
        enqueued(channels=[PUSH])

        worker.start()
        assert worker.is_running
        worker.stop(timeout=2)

        assert not worker.is_running

    def test_broker_outage_yields_no_work(self, push_worker, enqueued, broker):
        enqueued(channels=[PUSH])
        broker.set_available(False)

        stats = push_worker.run_once()

        assert stats["processed"] == 0

    def test_build_workers_keyed_by_channel(
        self, broker, notification_store, lifecycle, transport
    ):
        workers = build_workers(
            [InAppChannelHandler(), TransportChannelHandler(PUSH, transport)],
            broker,
            QUEUE_NAMES,
            notification_store,
            lifecycle,
        )

        assert set(workers) == {DeliveryChannel.IN_APP, PUSH}
        assert workers[PUSH].queue_name == PUSH_QUEUE

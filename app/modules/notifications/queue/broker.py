"""Queue broker capability interface and in-memory implementation.

Every broker operation returns an ``OperationResult``. An unreachable broker
is reported with the UNAVAILABLE status so callers branch on a value rather
than intercepting exceptions.
"""

import copy
import heapq
import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.operations import (
    OperationResult,
    OperationStatus,
    classify_broker_error,
)
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import JobState
from modules.notifications.queue.models import Job

logger = get_module_logger()

FINISHED_STATES = (JobState.COMPLETED, JobState.FAILED)


class QueueBroker(Protocol):
    """Durable job broker with named queues.

    Methods:
        add: Enqueue one job (delayed when available_at is in the future)
        add_bulk: Enqueue several jobs in one call
        fetch_next: Pop the highest-priority available job and mark it active
        complete: Mark an active job completed
        fail: Record a failed attempt; reschedule with backoff or fail the job
        retry_job: Re-queue a failed job
        get_job: Look up a job by id
        get_jobs: List jobs in the given states
        get_counts: Count jobs per state
        pause / resume: Stop or restart handing out jobs
        clean: Remove finished jobs older than a grace period
    """

    def add(self, queue_name: str, job: Job) -> OperationResult:
        ...

    def add_bulk(self, queue_name: str, jobs: List[Job]) -> OperationResult:
        ...

    def fetch_next(
        self, queue_name: str, now: Optional[datetime] = None
    ) -> OperationResult:
        """data is the fetched Job, or None when nothing is available."""
        ...

    def complete(self, queue_name: str, job_id: str) -> OperationResult:
        ...

    def fail(
        self,
        queue_name: str,
        job_id: str,
        reason: str,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """data is {"final": bool, "retry_at": datetime | None, "attempts": int}."""
        ...

    def retry_job(self, queue_name: str, job_id: str) -> OperationResult:
        ...

    def get_job(self, queue_name: str, job_id: str) -> OperationResult:
        ...

    def get_jobs(
        self, queue_name: str, states: Optional[Iterable[JobState]] = None
    ) -> OperationResult:
        ...

    def get_counts(self, queue_name: str) -> OperationResult:
        """data is a dict keyed by JobState value."""
        ...

    def pause(self, queue_name: str) -> OperationResult:
        ...

    def resume(self, queue_name: str) -> OperationResult:
        ...

    def clean(
        self,
        queue_name: str,
        grace_seconds: int,
        states: Iterable[JobState] = FINISHED_STATES,
    ) -> OperationResult:
        """data is the number of removed jobs."""
        ...


@dataclass
class _QueueState:
    jobs: Dict[str, Job] = field(default_factory=dict)
    waiting: List[Tuple[int, int, str]] = field(default_factory=list)
    paused: bool = False


class InMemoryQueueBroker:
    """Thread-safe in-memory QueueBroker.

    Waiting jobs are kept in a heap ordered by descending priority, then
    insertion order. Delayed jobs are promoted once their available_at has
    passed. Completed and failed jobs are trimmed to the retention caps.

    ``set_available(False)`` simulates an outage: every call then returns an
    UNAVAILABLE result.

    Attributes:
        keep_completed: Completed jobs retained per queue
        keep_failed: Failed jobs retained per queue
    """

    def __init__(
        self,
        queue_names: Iterable[str],
        keep_completed: int = 100,
        keep_failed: int = 50,
    ) -> None:
        self._queues: Dict[str, _QueueState] = {name: _QueueState() for name in queue_names}
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._available = True
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    @property
    def queue_names(self) -> List[str]:
        return list(self._queues)

    def set_available(self, available: bool) -> None:
        self._available = available
        logger.warning("broker_availability_changed", available=available)

    def add(self, queue_name: str, job: Job) -> OperationResult:
        result = self.add_bulk(queue_name, [job])
        if not result.is_success:
            return result
        return OperationResult.success(data=result.data[0], message="job added")

    def add_bulk(self, queue_name: str, jobs: List[Job]) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                now = utc_now()
                ids = []
                for job in jobs:
                    stored = copy.deepcopy(job)
                    queue.jobs[stored.id] = stored
                    self._schedule(queue, stored, now)
                    ids.append(stored.id)
            logger.debug("jobs_added", queue=queue_name, count=len(ids))
            return OperationResult.success(data=ids, message="jobs added")
        except Exception as exc:
            return classify_broker_error(exc)

    def fetch_next(
        self, queue_name: str, now: Optional[datetime] = None
    ) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                if queue.paused:
                    return OperationResult.success(data=None, message="queue paused")
                now = as_utc(now or utc_now())
                self._promote_delayed(queue, now)

                while queue.waiting:
                    _, _, job_id = heapq.heappop(queue.waiting)
                    job = queue.jobs.get(job_id)
                    if job is None or job.state != JobState.WAITING:
                        continue
                    job.state = JobState.ACTIVE
                    job.processed_at = now
                    return OperationResult.success(data=copy.deepcopy(job))
                return OperationResult.success(data=None, message="queue empty")
        except Exception as exc:
            return classify_broker_error(exc)

    def complete(self, queue_name: str, job_id: str) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                job = queue.jobs[job_id]
                job.state = JobState.COMPLETED
                job.finished_at = utc_now()
                self._trim(queue, JobState.COMPLETED, self.keep_completed)
            return OperationResult.success(message="job completed")
        except Exception as exc:
            return classify_broker_error(exc)

    def fail(
        self,
        queue_name: str,
        job_id: str,
        reason: str,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                job = queue.jobs[job_id]
                now = as_utc(now or utc_now())
                job.attempts += 1
                job.failed_reason = reason

                if retryable and job.attempts < job.max_attempts:
                    delay = job.backoff_for(job.attempts)
                    job.available_at = now + timedelta(seconds=delay)
                    self._schedule(queue, job, now)
                    logger.info(
                        "job_retry_scheduled",
                        queue=queue_name,
                        job_id=job_id,
                        attempts=job.attempts,
                        delay_seconds=delay,
                    )
                    return OperationResult.success(
                        data={
                            "final": False,
                            "retry_at": job.available_at,
                            "attempts": job.attempts,
                        },
                        message="job rescheduled",
                    )

                job.state = JobState.FAILED
                job.finished_at = now
                self._trim(queue, JobState.FAILED, self.keep_failed)
                logger.warning(
                    "job_failed_permanently",
                    queue=queue_name,
                    job_id=job_id,
                    attempts=job.attempts,
                    reason=reason,
                )
                return OperationResult.success(
                    data={"final": True, "retry_at": None, "attempts": job.attempts},
                    message="job failed",
                )
        except Exception as exc:
            return classify_broker_error(exc)

    def retry_job(self, queue_name: str, job_id: str) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                job = queue.jobs.get(job_id)
                if job is None or job.state != JobState.FAILED:
                    return OperationResult.error(
                        OperationStatus.NOT_FOUND,
                        f"No failed job {job_id} in {queue_name}",
                        error_code="JOB_NOT_FOUND",
                    )
                now = utc_now()
                job.attempts = 0
                job.failed_reason = None
                job.finished_at = None
                job.available_at = now
                self._schedule(queue, job, now)
            logger.info("job_requeued", queue=queue_name, job_id=job_id)
            return OperationResult.success(data=job_id, message="job requeued")
        except Exception as exc:
            return classify_broker_error(exc)

    def get_job(self, queue_name: str, job_id: str) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                job = self._queue(queue_name).jobs.get(job_id)
                if job is None:
                    return OperationResult.error(
                        OperationStatus.NOT_FOUND,
                        f"Job {job_id} not found in {queue_name}",
                        error_code="JOB_NOT_FOUND",
                    )
                return OperationResult.success(data=copy.deepcopy(job))
        except Exception as exc:
            return classify_broker_error(exc)

    def get_jobs(
        self, queue_name: str, states: Optional[Iterable[JobState]] = None
    ) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                self._promote_delayed(queue, utc_now())
                wanted = set(states) if states is not None else set(JobState)
                jobs = [
                    copy.deepcopy(job)
                    for job in queue.jobs.values()
                    if job.state in wanted
                ]
                return OperationResult.success(data=jobs)
        except Exception as exc:
            return classify_broker_error(exc)

    def get_counts(self, queue_name: str) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                self._promote_delayed(queue, utc_now())
                counts = {state.value: 0 for state in JobState}
                for job in queue.jobs.values():
                    counts[job.state.value] += 1
                return OperationResult.success(data=counts)
        except Exception as exc:
            return classify_broker_error(exc)

    def pause(self, queue_name: str) -> OperationResult:
        return self._set_paused(queue_name, True)

    def resume(self, queue_name: str) -> OperationResult:
        return self._set_paused(queue_name, False)

    def clean(
        self,
        queue_name: str,
        grace_seconds: int,
        states: Iterable[JobState] = FINISHED_STATES,
    ) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                queue = self._queue(queue_name)
                cutoff = utc_now() - timedelta(seconds=grace_seconds)
                wanted = set(states)
                stale = [
                    job_id
                    for job_id, job in queue.jobs.items()
                    if job.state in wanted
                    and job.finished_at is not None
                    and job.finished_at < cutoff
                ]
                for job_id in stale:
                    del queue.jobs[job_id]
            logger.info("queue_cleaned", queue=queue_name, removed=len(stale))
            return OperationResult.success(data=len(stale), message="queue cleaned")
        except Exception as exc:
            return classify_broker_error(exc)

    def _set_paused(self, queue_name: str, paused: bool) -> OperationResult:
        try:
            with self._lock:
                self._check_available()
                self._queue(queue_name).paused = paused
            logger.info("queue_paused" if paused else "queue_resumed", queue=queue_name)
            return OperationResult.success(message="paused" if paused else "resumed")
        except Exception as exc:
            return classify_broker_error(exc)

    def _check_available(self) -> None:
        if not self._available:
            raise ConnectionError("broker connection refused")

    def _queue(self, queue_name: str) -> _QueueState:
        try:
            return self._queues[queue_name]
        except KeyError:
            raise LookupError(f"Unknown queue: {queue_name}") from None

    def _schedule(self, queue: _QueueState, job: Job, now: datetime) -> None:
        # Caller holds the lock
        if job.available_at > now:
            job.state = JobState.DELAYED
            return
        job.state = JobState.WAITING
        heapq.heappush(queue.waiting, (-job.priority, next(self._sequence), job.id))

    def _promote_delayed(self, queue: _QueueState, now: datetime) -> None:
        due = sorted(
            (
                job
                for job in queue.jobs.values()
                if job.state == JobState.DELAYED and job.available_at <= now
            ),
            key=lambda job: job.available_at,
        )
        for job in due:
            self._schedule(queue, job, now)

    @staticmethod
    def _trim(queue: _QueueState, state: JobState, keep: int) -> None:
        finished = sorted(
            (job for job in queue.jobs.values() if job.state == state),
            key=lambda job: job.finished_at,
        )
        for job in finished[: max(len(finished) - keep, 0)]:
            del queue.jobs[job.id]

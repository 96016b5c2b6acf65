"""
Job status aggregation with client-side polling.

The aggregator only observes jobs. It polls a feed, backs off
exponentially on transport errors, pauses after repeated failures and
keeps batch progress counters that survive batches growing mid-flight.
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Set

from ..config import PollingConfig
from ..exceptions import JobFeedError
from ..schemas import Job, JobStatus
from .feed import JobStatusFeed

logger = logging.getLogger(__name__)


@dataclass
class JobSummary:
    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    is_optimizing: bool = False
    progress: int = 0
    batch_total: int = 0
    batch_completed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class JobStatusAggregator:
    """
    Polls a job status feed and exposes ``jobs`` and ``summary``.

    Only jobs belonging to a batch with pending or running work are exposed.
    Batch counters track every job id seen in the active batches; when a
    poll finds every batch finished the counters show the final totals, and
    the next poll that still finds nothing unfinished resets them to zero.
    """

    def __init__(self, feed: JobStatusFeed,
                 config: Optional[PollingConfig] = None,
                 on_job_completed: Optional[Callable[[Job], None]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.feed = feed
        self.config = config or PollingConfig()
        self.on_job_completed = on_job_completed
        self._sleep = sleep

        self._lock = threading.RLock()
        self._all_jobs: List[Job] = []
        self._consecutive_errors = 0
        self._delay = self.config.interval_seconds
        self._paused = False
        self._last_error: Optional[str] = None

        self._batch_jobs: Dict[str, Set[int]] = {}
        self._job_status: Dict[int, JobStatus] = {}
        self._drained = False
        self._processed_job_ids: Set[int] = set()

    @property
    def current_delay(self) -> float:
        with self._lock:
            return self._delay

    @property
    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    @property
    def consecutive_errors(self) -> int:
        with self._lock:
            return self._consecutive_errors

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    def poll_once(self) -> bool:
        """
        Fetch one snapshot.

        Returns:
        -------
        bool
            True when the snapshot was fetched, False on a transport error or
            while polling is paused
        """
        if self.is_paused:
            logger.debug("Polling is paused, skipping fetch")
            return False

        try:
            jobs = self.feed.fetch()
        except JobFeedError as e:
            self._record_error(str(e))
            return False

        with self._lock:
            self._consecutive_errors = 0
            self._delay = self.config.interval_seconds
            self._last_error = None
            self._all_jobs = list(jobs)
            self._update_batches(jobs)

        self._notify_completed(jobs)
        return True

    def _record_error(self, message: str) -> None:
        with self._lock:
            self._consecutive_errors += 1
            self._last_error = message
            self._delay = min(
                self.config.interval_seconds * self.config.backoff_multiplier ** self._consecutive_errors,
                self.config.max_interval_seconds
            )

            if self._consecutive_errors >= self.config.max_consecutive_errors:
                self._paused = True
                logger.warning(
                    f"Job status feed failed {self._consecutive_errors} times in a row, polling paused: {message}"
                )
            else:
                logger.warning(
                    f"Job status feed error ({self._consecutive_errors}/{self.config.max_consecutive_errors}), "
                    f"retrying in {self._delay:.1f}s: {message}"
                )

    @staticmethod
    def _group_by_batch(jobs: List[Job]) -> Dict[str, List[Job]]:
        batches: Dict[str, List[Job]] = {}
        for job in jobs:
            if job.batch_id:
                batches.setdefault(job.batch_id, []).append(job)
        return batches

    @staticmethod
    def _unfinished(batches: Dict[str, List[Job]]) -> List[str]:
        return [batch_id for batch_id, batch_jobs in batches.items()
                if any(job.status.is_active for job in batch_jobs)]

    def _update_batches(self, jobs: List[Job]) -> None:
        batches = self._group_by_batch(jobs)
        unfinished = self._unfinished(batches)

        for job in jobs:
            self._job_status[job.id] = job.status

        if not unfinished:
            if self._batch_jobs and not self._drained:
                self._drained = True
                logger.info(f"All batches finished ({self.batch_total} jobs)")
            elif self._drained:
                self._reset_batches()
            return

        if self._drained:
            self._reset_batches()

        for batch_id, batch_jobs in batches.items():
            if batch_id not in self._batch_jobs and batch_id not in unfinished:
                # finished before it was ever observed as active
                continue
            tracked = self._batch_jobs.setdefault(batch_id, set())
            tracked.update(job.id for job in batch_jobs)

    def _reset_batches(self) -> None:
        self._batch_jobs.clear()
        self._job_status = {job.id: job.status for job in self._all_jobs}
        self._drained = False

    @property
    def batch_total(self) -> int:
        with self._lock:
            return sum(len(ids) for ids in self._batch_jobs.values())

    @property
    def batch_completed(self) -> int:
        with self._lock:
            return sum(
                1 for ids in self._batch_jobs.values() for job_id in ids
                if job_id in self._job_status and self._job_status[job_id].is_terminal
            )

    def _notify_completed(self, jobs: List[Job]) -> None:
        if self.on_job_completed is None:
            return
        for job in jobs:
            if job.status == JobStatus.COMPLETED and job.result is not None and job.id not in self._processed_job_ids:
                self._processed_job_ids.add(job.id)
                try:
                    self.on_job_completed(job)
                except Exception as e:
                    logger.error(f"Completed-job handler failed for job {job.id}: {e}")

    @property
    def all_jobs(self) -> List[Job]:
        with self._lock:
            return list(self._all_jobs)

    @property
    def jobs(self) -> List[Job]:
        """Jobs belonging to a batch that still has pending or running work."""
        with self._lock:
            unfinished = set(self._unfinished(self._group_by_batch(self._all_jobs)))
            return [job for job in self._all_jobs if job.batch_id in unfinished]

    @property
    def summary(self) -> JobSummary:
        jobs = self.jobs
        counts = {status: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status] += 1

        processable = len(jobs) - counts[JobStatus.CANCELLED]
        finished = counts[JobStatus.COMPLETED] + counts[JobStatus.FAILED]
        progress = round(finished / processable * 100) if processable > 0 else 0

        return JobSummary(
            total=len(jobs),
            pending=counts[JobStatus.PENDING],
            running=counts[JobStatus.RUNNING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            cancelled=counts[JobStatus.CANCELLED],
            is_optimizing=counts[JobStatus.PENDING] + counts[JobStatus.RUNNING] > 0,
            progress=progress,
            batch_total=self.batch_total,
            batch_completed=self.batch_completed
        )

    def has_active_jobs(self, entity_key: str) -> bool:
        with self._lock:
            return any(job.sku == entity_key and job.status.is_active for job in self._all_jobs)

    def should_surface_error(self, entity_key: Optional[str] = None) -> bool:
        """
        Whether a feed failure should be shown to the user.

        Only after polling paused on repeated failures, and never while
        jobs for ``entity_key`` were last seen pending or running.
        """
        if not self.is_paused:
            return False
        if entity_key is not None and self.has_active_jobs(entity_key):
            return False
        return True

    def resume(self) -> None:
        """Resume polling after a pause, with the base interval."""
        with self._lock:
            self._consecutive_errors = 0
            self._delay = self.config.interval_seconds
            self._paused = False
        logger.info("Job status polling resumed")

    def run(self, max_polls: Optional[int] = None,
            stop_event: Optional[threading.Event] = None) -> int:
        """
        Poll until paused, stopped or ``max_polls`` fetches were attempted.

        Returns the number of polls made.
        """
        polls = 0
        while not self.is_paused:
            if stop_event is not None and stop_event.is_set():
                break
            self.poll_once()
            polls += 1
            if (max_polls is not None and polls >= max_polls) or self.is_paused:
                break
            if stop_event is not None:
                if stop_event.wait(self.current_delay):
                    break
            else:
                self._sleep(self.current_delay)
        return polls

"""
Optimization job store and worker.

``InMemoryJobStore`` keeps job records and hands each pending job to
exactly one worker. ``OptimizationWorker`` claims a job, runs a grid or
AI-refined search for it with progress written back, and completes or fails
the job.
"""

import itertools
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..cache.result_cache import ResultCache
from ..exceptions import InvalidJobTransitionError, OptimizerError
from ..optimization.ai_optimizer import AIOptimizer
from ..optimization.data_validator import compute_data_hash
from ..optimization.grid_optimizer import GridOptimizer
from ..schemas import Job, JobStatus, OptimizationMethod

logger = logging.getLogger(__name__)

SeriesLoader = Callable[[Job], Any]


class InMemoryJobStore:
    """Thread-safe job store."""

    def __init__(self):
        self._jobs: Dict[int, Job] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def submit(self, sku: str, model_id: str, method: str = 'grid',
               priority: int = 0, batch_id: Optional[str] = None,
               payload: Optional[Dict[str, Any]] = None) -> Job:
        now = datetime.now()
        with self._lock:
            job = Job(
                id=next(self._ids),
                sku=sku,
                model_id=model_id,
                method=OptimizationMethod(method),
                priority=priority,
                batch_id=batch_id,
                payload=payload or {},
                created_at=now,
                updated_at=now
            )
            self._jobs[job.id] = job
        logger.debug(f"Submitted job {job.id} for {sku}/{model_id} ({method})")
        return job

    def submit_batch(self, items: Iterable[Dict[str, Any]], priority: int = 0) -> List[Job]:
        """Submit several jobs under one new batch id."""
        batch_id = uuid.uuid4().hex
        jobs = [self.submit(priority=priority, batch_id=batch_id, **item) for item in items]
        logger.info(f"Submitted batch {batch_id} with {len(jobs)} jobs")
        return jobs

    def get(self, job_id: int) -> Job:
        with self._lock:
            if job_id not in self._jobs:
                raise KeyError(f"Unknown job {job_id}")
            return self._jobs[job_id]

    def claim_next(self) -> Optional[Job]:
        """
        Move the next pending job to running and return it.

        Highest priority first, then oldest. The check and the transition
        happen under one lock, so a job is never claimed twice.
        """
        with self._lock:
            pending = [job for job in self._jobs.values() if job.status == JobStatus.PENDING]
            if not pending:
                return None
            job = min(pending, key=lambda j: (-j.priority, j.created_at or datetime.min, j.id))
            claimed = job.transition(JobStatus.RUNNING, progress=0)
            self._jobs[job.id] = claimed
            return claimed

    def _transition(self, job_id: int, status: JobStatus, **changes: Any) -> Job:
        with self._lock:
            job = self._jobs[job_id]
            updated = job.transition(status, **changes)
            self._jobs[job_id] = updated
            return updated

    def update_progress(self, job_id: int, progress: float) -> Job:
        with self._lock:
            job = self._jobs[job_id]
            if job.status != JobStatus.RUNNING:
                raise InvalidJobTransitionError(
                    f"Job {job_id}: progress can only change while running (status {job.status.value})"
                )
            updated = job.model_copy(update={
                'progress': max(job.progress, min(100.0, float(progress))),
                'updated_at': datetime.now()
            })
            self._jobs[job_id] = updated
            return updated

    def complete(self, job_id: int, result: Any) -> Job:
        return self._transition(job_id, JobStatus.COMPLETED, progress=100, result=result)

    def fail(self, job_id: int, error: str) -> Job:
        return self._transition(job_id, JobStatus.FAILED, error=error)

    def cancel(self, job_id: int) -> Job:
        return self._transition(job_id, JobStatus.CANCELLED)

    def list_jobs(self, status: Optional[JobStatus] = None,
                  batch_id: Optional[str] = None) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
        if batch_id is not None:
            jobs = [job for job in jobs if job.batch_id == batch_id]
        return sorted(jobs, key=lambda j: j.id)


class OptimizationWorker:
    """Runs optimization jobs from a job store."""

    def __init__(self, store: InMemoryJobStore,
                 series_loader: SeriesLoader,
                 optimizer: Optional[GridOptimizer] = None,
                 cache: Optional[ResultCache] = None):
        self.store = store
        self.series_loader = series_loader
        self.optimizer = optimizer or GridOptimizer()
        self.ai_optimizer = AIOptimizer(self.optimizer)
        self.cache = cache

    def _progress_writer(self, job: Job, offset: float, span: float):
        def write(progress: Dict[str, Any]) -> None:
            try:
                self.store.update_progress(job.id, offset + progress['percentage'] * span)
            except InvalidJobTransitionError:
                # cancelled while running
                logger.debug(f"Job {job.id} no longer running, progress dropped")
        return write

    def _run(self, job: Job, series) -> Dict[str, Any]:
        model_ids = [job.model_id] if job.model_id else None
        frequency = job.payload.get('frequency')
        seasonal_period = job.payload.get('seasonal_period')

        if job.method == OptimizationMethod.AI:
            analysis_writer = self._progress_writer(job, 0, 0.5)
            refinement_writer = self._progress_writer(job, 50, 0.5)

            def write(progress: Dict[str, Any]) -> None:
                if progress.get('phase') == 'analysis':
                    analysis_writer(progress)
                else:
                    refinement_writer(progress)

            outcome = self.ai_optimizer.run(series, model_ids, write, frequency, seasonal_period)
            summary = outcome.summary
            confidence = outcome.confidence
            result = outcome.to_dict()
        else:
            summary = self.optimizer.run_grid_search(
                series, model_ids,
                progress_callback=self._progress_writer(job, 0, 1.0),
                frequency=frequency,
                seasonal_period=seasonal_period
            )
            confidence = None
            result = {'type': 'grid', **summary.to_dict()}

        if self.cache is not None:
            data_hash = compute_data_hash(series)
            for model_id in summary.per_model_summary:
                best = GridOptimizer.best_for_model(summary.results, model_id)
                if best is None:
                    continue
                self.cache.record_result(
                    job.sku, model_id, job.method.value, best.parameters, data_hash,
                    confidence=confidence if confidence is not None else best.confidence,
                    accuracy=best.accuracy,
                    reasoning=f"{job.method.value} search over {summary.per_model_summary[model_id]['combinations']} combinations"
                )
        return result

    def process_next(self) -> Optional[Job]:
        """
        Claim and run one job.

        Returns:
        -------
        Job or None
            The job in its final state, or None when nothing was pending
        """
        job = self.store.claim_next()
        if job is None:
            return None

        logger.info(f"Processing job {job.id}: {job.sku}/{job.model_id or 'all models'} ({job.method.value})")
        try:
            series = self.series_loader(job)
            result = self._run(job, series)
        except OptimizerError as e:
            logger.error(f"Job {job.id} failed: {e}")
            return self._finish(job.id, error=str(e))
        except Exception as e:
            logger.exception(f"Job {job.id} failed unexpectedly")
            return self._finish(job.id, error=f"{e.__class__.__name__}: {e}")

        return self._finish(job.id, result=result)

    def _finish(self, job_id: int, result: Any = None, error: Optional[str] = None) -> Job:
        try:
            if error is not None:
                return self.store.fail(job_id, error)
            logger.info(f"Job {job_id} completed")
            return self.store.complete(job_id, result)
        except InvalidJobTransitionError:
            logger.info(f"Job {job_id} was cancelled before it finished")
            return self.store.get(job_id)

    def run_until_empty(self, max_jobs: Optional[int] = None) -> List[Job]:
        processed = []
        while max_jobs is None or len(processed) < max_jobs:
            job = self.process_next()
            if job is None:
                break
            processed.append(job)
        return processed

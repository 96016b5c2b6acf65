"""Tests for the in-memory job store and the optimization worker."""

import threading

import pytest

from forecast_optimizer.cache.result_cache import ResultCache
from forecast_optimizer.exceptions import InvalidJobTransitionError
from forecast_optimizer.jobs.worker import InMemoryJobStore, OptimizationWorker
from forecast_optimizer.optimization.data_validator import compute_data_hash
from forecast_optimizer.optimization.grid_optimizer import GridOptimizer
from forecast_optimizer.schemas import JobStatus


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def worker(store, registry, sales_values):
    return OptimizationWorker(
        store,
        series_loader=lambda job: sales_values,
        optimizer=GridOptimizer(registry=registry),
        cache=ResultCache()
    )


class TestInMemoryJobStore:

    def test_claim_order(self, store):
        low = store.submit('SKU1', 'offset')
        high = store.submit('SKU2', 'offset', priority=5)
        high_later = store.submit('SKU3', 'offset', priority=5)

        assert [store.claim_next().id for _ in range(3)] == [high.id, high_later.id, low.id]
        assert store.claim_next() is None

    def test_each_job_claimed_once(self, store):
        for i in range(40):
            store.submit(f'SKU{i}', 'offset')

        claimed = []
        lock = threading.Lock()

        def claim():
            while True:
                job = store.claim_next()
                if job is None:
                    return
                with lock:
                    claimed.append(job.id)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(claimed) == list(range(1, 41))
        assert len(store.list_jobs(JobStatus.RUNNING)) == 40

    def test_progress_only_moves_forward(self, store):
        job = store.submit('SKU1', 'offset')
        with pytest.raises(InvalidJobTransitionError):
            store.update_progress(job.id, 10)

        store.claim_next()
        store.update_progress(job.id, 30)
        assert store.update_progress(job.id, 20).progress == 30
        assert store.update_progress(job.id, 150).progress == 100

    def test_terminal_jobs_are_immutable(self, store):
        job = store.submit('SKU1', 'offset')
        store.claim_next()
        store.complete(job.id, {'type': 'grid'})
        with pytest.raises(InvalidJobTransitionError):
            store.cancel(job.id)
        with pytest.raises(InvalidJobTransitionError):
            store.fail(job.id, 'late failure')

    def test_submit_batch(self, store):
        jobs = store.submit_batch([
            {'sku': 'SKU1', 'model_id': 'offset'},
            {'sku': 'SKU2', 'model_id': 'offset', 'method': 'ai'},
        ])
        assert len({job.batch_id for job in jobs}) == 1
        assert store.list_jobs(batch_id=jobs[0].batch_id) == jobs

    def test_unknown_job(self, store):
        with pytest.raises(KeyError):
            store.get(99)


class TestOptimizationWorker:

    def test_grid_job_completes(self, worker, store, sales_values):
        store.submit('SKU1', 'offset', payload={'seasonal_period': 4})

        job = worker.process_next()

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result['type'] == 'grid'
        assert job.result['best_result']['parameters'] == {'offset': 0}

        slot = worker.cache.get_cached('SKU1', 'offset', compute_data_hash(sales_values))
        assert slot.parameters == {'offset': 0}
        assert slot.accuracy == pytest.approx(job.result['best_result']['accuracy'])

    def test_ai_job_completes(self, worker, store):
        store.submit('SKU1', 'offset', method='ai', payload={'seasonal_period': 4})

        job = worker.process_next()

        assert job.status == JobStatus.COMPLETED
        assert job.result['type'] == 'ai'
        assert 5.0 <= job.result['ai_insights']['confidence'] <= 95.0
        assert worker.cache.get_entry('SKU1', 'offset').slot('ai') is not None

    def test_search_failure_fails_the_job(self, worker, store):
        store.submit('SKU1', 'failing')

        job = worker.process_next()

        assert job.status == JobStatus.FAILED
        assert job.error == "All 2 parameter combinations failed"

    def test_loader_error_fails_the_job(self, store, registry):
        def missing(job):
            raise LookupError(f"no sales history for {job.sku}")

        worker = OptimizationWorker(store, missing, optimizer=GridOptimizer(registry=registry))
        store.submit('SKU1', 'offset')

        job = worker.process_next()
        assert job.status == JobStatus.FAILED
        assert job.error == "LookupError: no sales history for SKU1"

    def test_run_until_empty(self, worker, store):
        store.submit('SKU1', 'offset')
        store.submit('SKU2', 'failing')
        store.submit('SKU3', 'offset')

        processed = worker.run_until_empty()

        assert [job.status for job in processed] == [
            JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.COMPLETED
        ]
        assert worker.process_next() is None

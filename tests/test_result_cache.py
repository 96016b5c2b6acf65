"""Tests for the optimization result cache and winner selection."""

import math
import threading
from datetime import datetime, timedelta

import pytest

from forecast_optimizer.cache.result_cache import (
    ModelState, ResultCache, best_results_per_model, records_from_jobs, select_winner
)
from forecast_optimizer.config import CacheConfig, ScoringWeights
from forecast_optimizer.schemas import Job, JobStatus

HASH = "v2-30-abc"
OTHER_HASH = "v2-30-def"


class Clock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(clock):
    return ResultCache(CacheConfig(expiry_hours=24), clock=clock)


class TestValidity:

    def test_hit_for_same_hash(self, cache):
        cache.record_result('SKU1', 'holt_winters', 'grid', {'alpha': 0.3}, HASH, accuracy=91)
        slot = cache.get_cached('SKU1', 'holt_winters', HASH)
        assert slot.parameters == {'alpha': 0.3}
        assert slot.accuracy == 91

    def test_stale_after_data_change(self, cache):
        cache.record_result('SKU1', 'holt_winters', 'grid', {'alpha': 0.3}, HASH)
        assert cache.get_cached('SKU1', 'holt_winters', OTHER_HASH) is None

    def test_expiry(self, cache, clock):
        cache.record_result('SKU1', 'holt_winters', 'grid', {'alpha': 0.3}, HASH)
        clock.advance(hours=24)
        assert cache.get_cached('SKU1', 'holt_winters', HASH) is not None
        clock.advance(minutes=1)
        assert cache.get_cached('SKU1', 'holt_winters', HASH) is None

    def test_unversioned_hash_never_valid(self, cache):
        cache.record_result('SKU1', 'arima', 'grid', {'auto': True}, "legacyhash")
        assert cache.get_cached('SKU1', 'arima', "legacyhash") is None

    def test_returned_slot_is_a_copy(self, cache):
        cache.record_result('SKU1', 'arima', 'grid', {'p': 1}, HASH)
        cache.get_cached('SKU1', 'arima', HASH).parameters['p'] = 9
        assert cache.get_cached('SKU1', 'arima', HASH).parameters == {'p': 1}

    def test_unknown_method(self, cache):
        with pytest.raises(ValueError):
            cache.record_result('SKU1', 'arima', 'bayes', {}, HASH)


class TestMethodPriority:

    def test_ai_preferred_over_grid(self, cache):
        cache.record_result('SKU1', 'hw', 'grid', {'alpha': 0.2}, HASH)
        cache.record_result('SKU1', 'hw', 'ai', {'alpha': 0.25}, HASH)
        assert cache.best_available_method('SKU1', 'hw', HASH) == 'ai'
        assert cache.get_cached('SKU1', 'hw', HASH).parameters == {'alpha': 0.25}

    def test_stale_ai_falls_back_to_grid(self, cache):
        cache.record_result('SKU1', 'hw', 'ai', {'alpha': 0.25}, OTHER_HASH)
        cache.record_result('SKU1', 'hw', 'grid', {'alpha': 0.2}, HASH)
        assert cache.best_available_method('SKU1', 'hw', HASH) == 'grid'

    def test_nothing_cached_means_manual(self, cache):
        assert cache.best_available_method('SKU9', 'hw', HASH) == 'manual'

    def test_user_selection_wins_while_valid(self, cache):
        cache.record_result('SKU1', 'hw', 'grid', {'alpha': 0.2}, HASH)
        cache.record_result('SKU1', 'hw', 'ai', {'alpha': 0.25}, HASH)
        cache.set_selected_method('SKU1', 'hw', 'grid')
        assert cache.best_available_method('SKU1', 'hw', HASH) == 'grid'

        entry = cache.record_result('SKU1', 'hw', 'ai', {'alpha': 0.3}, HASH)
        assert entry.selected == 'grid'
        assert entry.user_selected


class TestSelectMethod:

    def test_switch_to_manual_clears_annotations(self, cache):
        cache.record_result('SKU1', 'hw', 'ai', {'alpha': 0.25}, HASH, confidence=80,
                            reasoning='ai search', accuracy=92)
        state = ModelState('hw', parameters={'alpha': 0.1, 'beta': 0.1})
        cache.set_selected_method('SKU1', 'hw', 'ai', model_state=state)
        assert state.optimization_method == 'ai'
        assert state.optimized_parameters == {'alpha': 0.25}
        assert state.expected_accuracy == 92

        entry = cache.set_selected_method('SKU1', 'hw', 'manual', data_hash=HASH, model_state=state)

        assert entry.selected == 'manual'
        assert entry.slot('manual').parameters == {'alpha': 0.25, 'beta': 0.1}
        assert state.parameters == {'alpha': 0.25, 'beta': 0.1}
        assert state.optimized_parameters is None
        assert state.optimization_method is None
        assert state.optimization_confidence is None
        assert state.optimization_reasoning is None
        assert state.expected_accuracy is None

    def test_manual_slot_used_afterwards(self, cache):
        cache.record_result('SKU1', 'hw', 'grid', {'alpha': 0.2}, HASH)
        cache.set_selected_method('SKU1', 'hw', 'manual', data_hash=HASH)
        assert cache.get_cached('SKU1', 'hw', HASH).parameters == {'alpha': 0.2}
        assert cache.best_available_method('SKU1', 'hw', HASH) == 'manual'


def test_entities_needing_optimization(cache):
    cache.record_result('SKU1', 'hw', 'grid', {'alpha': 0.2}, HASH)
    cache.record_result('SKU2', 'hw', 'grid', {'alpha': 0.2}, HASH)
    items = [('SKU1', 'hw', HASH), ('SKU2', 'hw', OTHER_HASH), ('SKU3', 'hw', HASH)]
    assert cache.entities_needing_optimization(items) == [('SKU2', 'hw'), ('SKU3', 'hw')]


def test_invalidate(cache):
    cache.record_result('SKU1', 'hw', 'grid', {}, HASH)
    cache.record_result('SKU1', 'arima', 'grid', {}, HASH)
    cache.record_result('SKU2', 'hw', 'grid', {}, HASH)
    assert cache.invalidate('SKU1') == 2
    assert len(cache) == 1


def test_concurrent_writes_keep_every_method(cache):
    def write(method):
        for i in range(50):
            cache.record_result('SKU1', 'hw', method, {'i': i}, HASH)

    threads = [threading.Thread(target=write, args=(m,)) for m in ('ai', 'grid', 'manual')]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    entry = cache.get_entry('SKU1', 'hw')
    assert set(entry.slots) == {'ai', 'grid', 'manual'}
    assert all(slot.parameters == {'i': 49} for slot in entry.slots.values())


class TestCompositeScore:

    def test_best_result_per_group(self):
        records = [
            {'sku': 'S', 'model_id': 'hw', 'method': 'grid', 'mape': 10, 'rmse': 5, 'mae': 4, 'accuracy': 90},
            {'sku': 'S', 'model_id': 'hw', 'method': 'grid', 'mape': 20, 'rmse': 8, 'mae': 6, 'accuracy': 80},
            {'sku': 'S', 'model_id': 'hw', 'method': 'ai', 'mape': 5, 'rmse': 3, 'mae': 2, 'accuracy': 95},
        ]
        best = best_results_per_model(records)
        by_method = {entry['method']: entry['best_result'] for entry in best}
        assert by_method['grid']['mape'] == 10
        # 0.4 * 0.5 + 0.3 * (3 / 8) + 0.2 * (2 / 6) + 0.1 * 0.9
        assert by_method['grid']['composite_score'] == pytest.approx(0.2 + 0.1125 + 0.2 / 3 + 0.09)

    def test_custom_weights(self):
        records = [
            {'sku': 'S', 'model_type': 'hw', 'method': 'grid', 'mape': 10, 'rmse': 5, 'mae': 4, 'accuracy': 90},
            {'sku': 'S', 'model_type': 'hw', 'method': 'grid', 'mape': 20, 'rmse': 1, 'mae': 1, 'accuracy': 80},
        ]
        weights = ScoringWeights.from_percentages(mape=0, rmse=100, mae=0, accuracy=0)
        best = best_results_per_model(records, weights)
        assert best[0]['model_id'] == 'hw'
        assert best[0]['best_result']['rmse'] == 1

    def test_non_finite_metric_scores_as_worst(self):
        records = [
            {'sku': 'S', 'model_id': 'm', 'method': 'grid', 'mape': math.inf, 'rmse': None, 'mae': 1, 'accuracy': 0},
            {'sku': 'S', 'model_id': 'm', 'method': 'grid', 'mape': 8, 'rmse': 2, 'mae': 1, 'accuracy': 92},
        ]
        best = best_results_per_model(records)
        assert best[0]['best_result']['mape'] == 8

    def test_filters(self):
        records = [
            {'sku': 'A', 'model_id': 'm', 'method': 'grid', 'mape': 1, 'accuracy': 99},
            {'sku': 'B', 'model_id': 'm', 'method': 'grid', 'mape': 1, 'accuracy': 99},
        ]
        assert [e['sku'] for e in best_results_per_model(records, sku='B')] == ['B']

    def test_exactly_one_winner_per_sku(self):
        best = [
            {'sku': 'A', 'model_id': 'hw', 'method': 'grid', 'best_result': {'composite_score': 0.6}},
            {'sku': 'A', 'model_id': 'hw', 'method': 'ai', 'best_result': {'composite_score': 0.8}},
            {'sku': 'A', 'model_id': 'arima', 'method': 'grid', 'best_result': {'composite_score': 0.7}},
            {'sku': 'B', 'model_id': 'hw', 'method': 'grid', 'best_result': {'accuracy': 70}},
        ]
        select_winner(best)
        winners = [(e['sku'], e['model_id'], e['method']) for e in best if e['is_winner']]
        assert winners == [('A', 'hw', 'ai'), ('B', 'hw', 'grid')]

    def test_records_from_completed_jobs(self):
        jobs = [
            Job(id=1, sku='A', model_id='hw', status=JobStatus.COMPLETED, batch_id='b1', result={
                'results': [
                    {'model_type': 'hw', 'mape': 5, 'accuracy': 95, 'success': True},
                    {'model_type': 'hw', 'mape': math.inf, 'accuracy': 0, 'success': False},
                ]
            }),
            Job(id=2, sku='A', model_id='hw', status=JobStatus.FAILED, error='boom'),
        ]
        records = records_from_jobs(jobs)
        assert len(records) == 1
        assert records[0]['sku'] == 'A' and records[0]['method'] == 'grid' and records[0]['job_id'] == 1

"""Tests for accuracy metrics and the time-respecting validation engine."""

import math

import numpy as np
import pytest

from forecast_optimizer.config import ValidationConfig
from forecast_optimizer.evaluation.metrics import ForecastMetrics, ValidationMetrics
from forecast_optimizer.optimization.validation import ValidationEngine


def trend_forecaster(offset=0.0, calls=None):
    """Extends the unit slope of a linear series, shifted by ``offset``."""
    def forecast(train, periods):
        if calls is not None:
            calls.append(len(train))
        return train[-1] + np.arange(1, periods + 1) + offset
    return forecast


@pytest.fixture
def linear_series():
    return np.arange(10, 40, dtype=float)


@pytest.fixture
def engine():
    return ValidationEngine(ValidationConfig())


class TestForecastMetrics:

    def test_calculate(self):
        metrics = ForecastMetrics.calculate([100, 200], [110, 180])
        assert metrics.mape == pytest.approx(10.0)
        assert metrics.accuracy == pytest.approx(90.0)
        assert metrics.rmse == pytest.approx(math.sqrt(250))
        assert metrics.mae == pytest.approx(15.0)
        assert metrics.confidence == pytest.approx(88.0)

    def test_mape_skips_zero_actuals(self):
        metrics = ForecastMetrics.calculate([0, 100], [5, 110])
        assert metrics.mape == pytest.approx(10.0)
        assert metrics.mae == pytest.approx(7.5)

    def test_accuracy_floor_is_zero(self):
        assert ForecastMetrics.calculate([10, 10], [100, 100]).accuracy == 0.0

    @pytest.mark.parametrize('actual, predicted', [
        ([], []),
        ([0, 0, 0], [1, 2, 3]),
        ([np.nan, 5], [1, np.nan]),
    ])
    def test_degenerate(self, actual, predicted):
        metrics = ForecastMetrics.calculate(actual, predicted)
        assert metrics.is_degenerate
        assert (metrics.accuracy, metrics.mape, metrics.confidence) == (0.0, 100.0, 0.0)
        assert math.isinf(metrics.rmse) and math.isinf(metrics.mae)

    def test_consistency_confidence_bounds(self):
        assert ForecastMetrics.consistency_confidence(100, [100, 100, 100]) == 95.0
        assert ForecastMetrics.consistency_confidence(20, [20, 20]) == 50.0

    def test_recent_degradation_lowers_confidence(self):
        stable = ForecastMetrics.consistency_confidence(80, [80, 80, 80, 80])
        degrading = ForecastMetrics.consistency_confidence(80, [95, 95, 65, 65])
        assert degrading < stable


class TestWalkForward:

    def test_train_window_precedes_each_block(self, engine, linear_series):
        calls = []
        metrics = engine.walk_forward(linear_series, trend_forecaster(calls=calls))
        # min train max(6, floor(0.3 * 30)) = 9, blocks of 6
        assert calls == [9, 15, 21]
        assert metrics.accuracy == pytest.approx(100.0)
        assert metrics.confidence == 95.0

    def test_short_series_is_degenerate(self, engine):
        metrics = engine.walk_forward(np.arange(1, 12, dtype=float), trend_forecaster())
        assert metrics.is_degenerate
        assert metrics.accuracy == 0.0

    def test_failing_blocks_are_skipped(self, engine, linear_series):
        def flaky(train, periods):
            if len(train) == 15:
                raise RuntimeError("boom")
            return train[-1] + np.arange(1, periods + 1)

        metrics = engine.walk_forward(linear_series, flaky)
        assert metrics.n_points == 12

    def test_all_blocks_failing_is_degenerate(self, engine, linear_series):
        def broken(train, periods):
            raise RuntimeError("boom")

        assert engine.walk_forward(linear_series, broken).is_degenerate

    def test_max_steps_limits_blocks(self, linear_series):
        engine = ValidationEngine(ValidationConfig(max_steps=2))
        calls = []
        engine.walk_forward(linear_series, trend_forecaster(calls=calls))
        assert calls == [9, 15]


class TestCrossValidation:

    def test_folds_train_only_on_the_past(self, engine, linear_series):
        calls = []
        metrics = engine.cross_validate(linear_series, trend_forecaster(calls=calls), k=5)
        assert calls == [6, 12, 18, 24]
        assert metrics.accuracy == pytest.approx(100.0)

    def test_fold_count_capped_by_length(self, engine):
        calls = []
        engine.cross_validate(np.arange(1, 13, dtype=float), trend_forecaster(calls=calls), k=10)
        # 12 points support two folds of 6; the first has no history
        assert calls == [6]

    def test_short_series_is_degenerate(self, engine):
        assert engine.cross_validate([1.0, 2.0, 3.0], trend_forecaster()).is_degenerate


class TestAcceptance:

    @staticmethod
    def factory(parameters):
        return trend_forecaster(offset=parameters['offset'])

    def test_significant_improvement(self, engine, linear_series):
        decision = engine.accept_suggested_parameters(
            self.factory, linear_series, {'offset': 5.0}, {'offset': 0.0}, suggested_confidence=70
        )
        assert decision.accepted
        assert decision.reason == 'significant improvement'
        assert decision.parameters == {'offset': 0.0}
        assert decision.confidence == 95.0

    def test_high_confidence_within_tolerance(self, engine, linear_series):
        decision = engine.accept_suggested_parameters(
            self.factory, linear_series, {'offset': 0.0}, {'offset': 0.01}, suggested_confidence=80
        )
        assert decision.accepted
        assert decision.reason == 'high confidence with acceptable performance'
        assert decision.confidence == pytest.approx(80.0)

    def test_worse_suggestion_rejected(self, engine, linear_series):
        decision = engine.accept_suggested_parameters(
            self.factory, linear_series, {'offset': 0.0}, {'offset': 5.0}, suggested_confidence=50
        )
        assert not decision.accepted
        assert decision.reason == 'no improvement over baseline'
        assert decision.parameters == {'offset': 0.0}
        assert decision.improvement < 0

    def test_insufficient_data(self, engine):
        decision = engine.accept_suggested_parameters(
            self.factory, np.arange(1, 21, dtype=float), {'offset': 5.0}, {'offset': 0.0}
        )
        assert not decision.accepted
        assert decision.reason == 'insufficient data for validation'


def test_degenerate_metrics_serialize():
    data = ValidationMetrics.degenerate().to_dict()
    assert data['accuracy'] == 0.0 and data['mape'] == 100.0

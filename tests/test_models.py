"""Tests for the model contract, the registry and the shipped models."""

import numpy as np
import pytest

from forecast_optimizer.exceptions import ModelContractError
from forecast_optimizer.models import (
    ARIMAModel, ForecastModel, LinearTrendModel, ModelRegistry, ModelSpec,
    MovingAverageModel, SeasonalMovingAverageModel, SeasonalNaiveModel,
    SimpleExponentialSmoothingModel, create_default_registry
)


class NotAModel:
    def train(self, series):
        return self


class HalfModel(ForecastModel):
    def _fit_model(self, values):
        pass


class TestModelRegistry:

    def test_rejects_class_outside_contract(self):
        registry = ModelRegistry()
        with pytest.raises(ModelContractError):
            registry.register(ModelSpec('bad', 'Bad', NotAModel))

    def test_rejects_abstract_model(self):
        registry = ModelRegistry()
        with pytest.raises(ModelContractError, match='_predict_model'):
            registry.register(ModelSpec('half', 'Half', HalfModel))

    def test_default_registry_contents(self):
        registry = create_default_registry()
        assert registry.available_models() == [
            'moving_average', 'simple_exponential_smoothing', 'double_exponential_smoothing',
            'linear_trend', 'seasonal_moving_average', 'holt_winters', 'seasonal_naive',
            'arima', 'sarima'
        ]

    def test_min_observations_depend_on_period(self):
        registry = create_default_registry()
        assert registry.min_observations('holt_winters', 12) == 24
        assert registry.min_observations('holt_winters', 4) == 8
        assert registry.min_observations('seasonal_naive', 7) == 7
        assert registry.min_observations('arima', 12) == 10
        assert registry.min_observations('double_exponential_smoothing') == 4

    def test_grid_search_only_filter(self, registry):
        assert 'opt_out' in registry.available_models()
        assert 'opt_out' not in registry.available_models(grid_search_only=True)

    def test_create_model_merges_defaults(self):
        model = create_default_registry().create_model('holt_winters', {'alpha': 0.5}, seasonal_period=4)
        assert model.parameters == {'alpha': 0.5, 'beta': 0.1, 'gamma': 0.1, 'type': 'additive'}
        assert model.season_length == 4


class TestForecastModel:

    def test_predict_before_training(self):
        with pytest.raises(ValueError, match='fitted'):
            MovingAverageModel({'window': 3}).predict(2)

    def test_validate_returns_metrics(self):
        model = MovingAverageModel({'window': 2}).train([10, 20, 30, 40])
        metrics = model.validate([35, 35])
        assert metrics.accuracy == pytest.approx(100.0)
        assert metrics.n_points == 2

    def test_moving_average_window_too_small(self):
        with pytest.raises(ValueError):
            MovingAverageModel({'window': 1}).train([1, 2, 3])

    def test_linear_trend_extrapolates(self):
        model = LinearTrendModel().train([1, 2, 3, 4, 5])
        np.testing.assert_allclose(model.predict(2), [6.0, 7.0])

    def test_seasonal_naive_repeats_last_season(self):
        model = SeasonalNaiveModel({'seasonal_period': 3}).train([1, 2, 3, 4, 5, 6])
        np.testing.assert_allclose(model.predict(4), [4, 5, 6, 4])

    def test_seasonal_moving_average_uses_complete_seasons(self):
        model = SeasonalMovingAverageModel({'window': 2}, seasonal_period=2).train([9, 1, 2, 4, 6, 8])
        np.testing.assert_allclose(model.predict(2), [4.0, 6.0])

    def test_simple_exponential_smoothing_forecast_is_flat(self):
        model = SimpleExponentialSmoothingModel({'alpha': 0.5}).train([10, 12, 11, 13, 12, 14])
        forecast = model.predict(3)
        assert len(forecast) == 3
        assert forecast[0] == pytest.approx(forecast[2])

    def test_arima_auto_reports_fitted_order(self):
        rng = np.random.default_rng(7)
        values = 50 + np.cumsum(rng.normal(0, 1, 40))
        model = ARIMAModel({'auto': True}).train(values)
        order = model.get_fitted_order()
        assert set(order) == {'p', 'd', 'q'}
        assert 0 <= order['d'] <= 2
        assert len(model.predict(5)) == 5

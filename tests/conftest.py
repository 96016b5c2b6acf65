"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta

import numpy as np
import pytest

from forecast_optimizer.config import InMemorySettingsStore, OptimizerConfig
from forecast_optimizer.core.event_system import EventBus
from forecast_optimizer.models.base import ForecastModel
from forecast_optimizer.models.registry import ModelRegistry, ModelSpec


class OffsetModel(ForecastModel):
    """Forecasts the last observation plus a fixed offset."""

    def _fit_model(self, values):
        self.last = float(values[-1])

    def _predict_model(self, periods):
        return np.full(periods, self.last + float(self.parameters.get('offset', 0)))


class FailingModel(ForecastModel):
    """Always fails to train."""

    def _fit_model(self, values):
        raise ValueError("cannot fit this series")

    def _predict_model(self, periods):
        return np.zeros(periods)


class SeasonalStubModel(ForecastModel):
    """Repeats the last season; records the seasonal period it was built with."""

    def _fit_model(self, values):
        period = int(self.parameters.get('seasonal_period') or self.seasonal_period)
        self.season = values[-period:]

    def _predict_model(self, periods):
        return np.array([self.season[i % len(self.season)] for i in range(periods)])


class AutoOrderStubModel(OffsetModel):
    """Pretends to select its own order during training."""

    supports_fitted_order = True

    def get_fitted_order(self):
        return {'p': 1, 'd': 0, 'q': 0}


@pytest.fixture
def registry():
    """Registry of deterministic stub models."""
    registry = ModelRegistry()
    registry.register(ModelSpec(
        model_id='offset',
        display_name='Offset',
        model_class=OffsetModel,
        optimization_grid={'offset': [0, 5, 10]},
        min_observations=2
    ))
    registry.register(ModelSpec(
        model_id='failing',
        display_name='Failing',
        model_class=FailingModel,
        optimization_grid={'x': [1, 2]},
        min_observations=2
    ))
    registry.register(ModelSpec(
        model_id='seasonal_stub',
        display_name='Seasonal stub',
        model_class=SeasonalStubModel,
        optimization_grid={'w': [1, 2]},
        is_seasonal=True,
        min_observations=lambda period: period
    ))
    registry.register(ModelSpec(
        model_id='auto_stub',
        display_name='Auto stub',
        model_class=AutoOrderStubModel,
        auto_order_search=True,
        min_observations=5
    ))
    registry.register(ModelSpec(
        model_id='opt_out',
        display_name='Opt out',
        model_class=OffsetModel,
        optimization_grid={'offset': [1]},
        include_in_grid_search=False
    ))
    return registry


@pytest.fixture
def sales_values():
    """Positive monthly-looking series with trend and a four-step pattern."""
    return [100.0 + i * 2 + (i % 4) * 5 for i in range(30)]


@pytest.fixture
def sales_records(sales_values):
    start = datetime(2022, 1, 1)
    return [
        {'date': (start + timedelta(days=30 * i)).strftime('%Y-%m-%d'), 'value': value}
        for i, value in enumerate(sales_values)
    ]


@pytest.fixture
def config():
    return OptimizerConfig()


@pytest.fixture
def settings():
    return InMemorySettingsStore()


@pytest.fixture
def event_bus():
    return EventBus()

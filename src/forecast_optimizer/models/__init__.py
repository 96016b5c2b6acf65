"""
Forecasting models consumed by the optimizer.
"""

from .arima import ARIMAModel, SARIMAModel
from .base import ForecastModel
from .baseline import (
    LinearTrendModel, MovingAverageModel, SeasonalMovingAverageModel, SeasonalNaiveModel
)
from .registry import ModelRegistry, ModelSpec, create_default_registry
from .smoothing import (
    DoubleExponentialSmoothingModel, HoltWintersModel, SimpleExponentialSmoothingModel
)

__all__ = [
    'ForecastModel',
    'ModelRegistry',
    'ModelSpec',
    'create_default_registry',
    'MovingAverageModel',
    'LinearTrendModel',
    'SeasonalNaiveModel',
    'SeasonalMovingAverageModel',
    'SimpleExponentialSmoothingModel',
    'DoubleExponentialSmoothingModel',
    'HoltWintersModel',
    'ARIMAModel',
    'SARIMAModel'
]

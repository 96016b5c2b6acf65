"""
Exponential smoothing models.

Thin wrappers around the statsmodels Holt-Winters family with fixed
(non-optimized) smoothing parameters, so the grid search decides them.
"""

import logging
import warnings

import numpy as np
from statsmodels.tsa.holtwinters import ExponentialSmoothing, Holt, SimpleExpSmoothing

from .base import ForecastModel

logger = logging.getLogger(__name__)


class SimpleExponentialSmoothingModel(ForecastModel):
    """Simple exponential smoothing (level only)."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.alpha = float(self.parameters.get('alpha', 0.3))
        self.model_fit = None

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, 2, "level initialisation")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            self.model_fit = SimpleExpSmoothing(
                values, initialization_method="estimated"
            ).fit(smoothing_level=self.alpha, optimized=False)

    def _predict_model(self, periods: int) -> np.ndarray:
        return self.model_fit.forecast(periods)


class DoubleExponentialSmoothingModel(ForecastModel):
    """Holt's linear trend method."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.alpha = float(self.parameters.get('alpha', 0.3))
        self.beta = float(self.parameters.get('beta', 0.1))
        self.model_fit = None

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, 4, "level and trend initialisation")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            self.model_fit = Holt(
                values, initialization_method="estimated"
            ).fit(smoothing_level=self.alpha, smoothing_trend=self.beta, optimized=False)

    def _predict_model(self, periods: int) -> np.ndarray:
        return self.model_fit.forecast(periods)


class HoltWintersModel(ForecastModel):
    """Triple exponential smoothing with additive or multiplicative seasonality."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.alpha = float(self.parameters.get('alpha', 0.3))
        self.beta = float(self.parameters.get('beta', 0.1))
        self.gamma = float(self.parameters.get('gamma', 0.1))
        self.seasonal_type = self.parameters.get('type', 'additive')
        self.season_length = int(self.parameters.get('seasonal_period') or seasonal_period or 12)
        self.model_fit = None

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, self.season_length * 2, "two full seasons")
        if self.seasonal_type == 'multiplicative' and np.any(values <= 0):
            raise ValueError("Multiplicative seasonality requires strictly positive values")

        seasonal = 'mul' if self.seasonal_type == 'multiplicative' else 'add'
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            self.model_fit = ExponentialSmoothing(
                values,
                trend='add',
                seasonal=seasonal,
                seasonal_periods=self.season_length,
                initialization_method="estimated"
            ).fit(
                smoothing_level=self.alpha,
                smoothing_trend=self.beta,
                smoothing_seasonal=self.gamma,
                optimized=False
            )

    def _predict_model(self, periods: int) -> np.ndarray:
        return self.model_fit.forecast(periods)

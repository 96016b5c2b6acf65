"""
Baseline forecasting models.

Moving averages, seasonal naive and a linear trend. These are cheap enough
to be searched exhaustively and serve as the reference every other model
has to beat.
"""

import logging

import numpy as np
from sklearn.linear_model import LinearRegression

from .base import ForecastModel

logger = logging.getLogger(__name__)


class MovingAverageModel(ForecastModel):
    """Flat forecast at the mean of the last ``window`` observations."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.window = int(round(self.parameters.get('window', 3)))
        self.level = None

    def _fit_model(self, values: np.ndarray) -> None:
        if self.window < 2:
            raise ValueError(f"Moving average window must be at least 2, got {self.window}")
        self._check_length(values, self.window, "one full window")
        self.level = float(np.mean(values[-self.window:]))

    def _predict_model(self, periods: int) -> np.ndarray:
        return np.full(periods, self.level)


class LinearTrendModel(ForecastModel):
    """Ordinary least squares trend line over the time index."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.estimator = LinearRegression()
        self.n_train = 0

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, 2, "trend estimation")
        index = np.arange(len(values)).reshape(-1, 1)
        self.estimator.fit(index, values)
        self.n_train = len(values)

    def _predict_model(self, periods: int) -> np.ndarray:
        future = np.arange(self.n_train, self.n_train + periods).reshape(-1, 1)
        return self.estimator.predict(future)


class SeasonalNaiveModel(ForecastModel):
    """Repeats the last observed season."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.season_length = int(self.parameters.get('seasonal_period') or seasonal_period or 12)
        self.last_season = None

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, self.season_length, "one full season")
        self.last_season = values[-self.season_length:]

    def _predict_model(self, periods: int) -> np.ndarray:
        return np.array([self.last_season[i % self.season_length] for i in range(periods)])


class SeasonalMovingAverageModel(ForecastModel):
    """Averages the same season position over the last ``window`` seasons."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.window = int(round(self.parameters.get('window', 3)))
        self.season_length = int(self.parameters.get('seasonal_period') or seasonal_period or 12)
        self.profile = None

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, self.season_length, "one full season")

        # Only complete seasons counted back from the last observation.
        n_seasons = min(self.window, len(values) // self.season_length)
        recent = values[len(values) - n_seasons * self.season_length:]
        self.profile = recent.reshape(n_seasons, self.season_length).mean(axis=0)

    def _predict_model(self, periods: int) -> np.ndarray:
        return np.array([self.profile[i % self.season_length] for i in range(periods)])

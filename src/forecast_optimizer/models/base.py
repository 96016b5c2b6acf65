"""
Base classes for forecasting models.

This module defines the contract every model consumed by the optimizer
implements: ``train`` on a series, ``predict`` a number of periods ahead and
``validate`` against a held-out series. Models that choose their own order
(ARIMA family) additionally expose the fitted order.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..evaluation.metrics import ForecastMetrics, ValidationMetrics

logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, np.ndarray, Sequence[float]]


class ForecastModel(ABC):
    """Abstract base class for univariate sales forecasting models."""

    # Models that select their own order in auto mode set this and override
    # get_fitted_order().
    supports_fitted_order: bool = False

    def __init__(self, parameters: Optional[Dict[str, Any]] = None,
                 seasonal_period: Optional[int] = None):
        self.parameters = dict(parameters or {})
        self.seasonal_period = seasonal_period
        self.model_name = self.__class__.__name__
        self.is_fitted = False
        self._history: Optional[np.ndarray] = None

    @abstractmethod
    def _fit_model(self, values: np.ndarray) -> None:
        """Fit the underlying model. To be implemented by subclasses."""
        pass

    @abstractmethod
    def _predict_model(self, periods: int) -> np.ndarray:
        """Forecast ``periods`` steps ahead. To be implemented by subclasses."""
        pass

    @staticmethod
    def _to_values(series: SeriesLike) -> np.ndarray:
        if isinstance(series, pd.Series):
            return series.to_numpy(dtype=float)
        return np.asarray(series, dtype=float)

    def train(self, series: SeriesLike) -> 'ForecastModel':
        """
        Fit the model to a training series.

        Parameters:
        ----------
        series : pd.Series or array-like
            Training values in time order

        Returns:
        -------
        ForecastModel
            Fitted model instance
        """
        values = self._to_values(series)
        if len(values) == 0:
            raise ValueError(f"{self.model_name} cannot be trained on an empty series")

        self._fit_model(values)
        self._history = values
        self.is_fitted = True
        return self

    def predict(self, periods: int) -> np.ndarray:
        """Forecast the next ``periods`` values."""
        if not self.is_fitted:
            raise ValueError("Model must be fitted before making predictions")
        if periods <= 0:
            return np.array([], dtype=float)

        predictions = np.asarray(self._predict_model(periods), dtype=float)
        return predictions[:periods]

    def validate(self, series: SeriesLike) -> ValidationMetrics:
        """Score a forecast of ``len(series)`` periods against ``series``."""
        if not self.is_fitted:
            raise ValueError("Model must be trained before validation")

        actual = self._to_values(series)
        predictions = self.predict(len(actual))
        return ForecastMetrics.calculate(actual, predictions)

    def get_fitted_order(self) -> Optional[Dict[str, Any]]:
        """Concrete order chosen during training, when the model selects one."""
        return None

    def get_parameters(self) -> Dict[str, Any]:
        return dict(self.parameters)

    def _check_length(self, values: np.ndarray, minimum: int, what: str) -> None:
        if len(values) < minimum:
            raise ValueError(
                f"{self.model_name} requires at least {minimum} observations ({what}), got {len(values)}"
            )

"""
ARIMA family models with automatic order selection.

In auto mode the differencing order is chosen with an augmented
Dickey-Fuller test and (p, q) by AIC over a small grid. The chosen order is
exposed through ``get_fitted_order`` so callers see what was actually fitted.
"""

import logging
import warnings
from typing import Any, Dict, Optional, Tuple

import numpy as np
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.stattools import adfuller

from .base import ForecastModel

logger = logging.getLogger(__name__)


class ARIMAModel(ForecastModel):
    """Non-seasonal ARIMA(p, d, q)."""

    supports_fitted_order = True
    min_train_size = 10

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.auto_order = bool(self.parameters.get('auto', False))
        self.order = (
            int(self.parameters.get('p', 1)),
            int(self.parameters.get('d', 1)),
            int(self.parameters.get('q', 1)),
        )
        self.max_p = int(self.parameters.get('max_p', 2))
        self.max_d = int(self.parameters.get('max_d', 2))
        self.max_q = int(self.parameters.get('max_q', 2))
        self.selected_order: Optional[Tuple[int, int, int]] = None
        self.aic_values: Dict[Tuple, float] = {}
        self.model_fit = None

    def _seasonal_order(self) -> Tuple[int, int, int, int]:
        return (0, 0, 0, 0)

    def _determine_differencing(self, values: np.ndarray) -> int:
        """Determine the number of differences needed for stationarity."""
        try:
            if adfuller(values)[1] <= 0.05:
                return 0
        except ValueError as e:
            logger.debug(f"ADF test failed on level series: {e}")
            return 1

        series = values
        for d in range(1, self.max_d + 1):
            series = np.diff(series)
            if len(series) < 10:
                return d
            try:
                if adfuller(series)[1] <= 0.05:
                    logger.debug(f"Series is stationary after {d} differences")
                    return d
            except ValueError as e:
                logger.debug(f"ADF test failed after {d} differences: {e}")
                return d

        return self.max_d

    def _fit(self, values: np.ndarray, order: Tuple[int, int, int]):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            return ARIMA(values, order=order, seasonal_order=self._seasonal_order()).fit()

    def _determine_order(self, values: np.ndarray) -> Tuple[int, int, int]:
        d = self._determine_differencing(values)

        best_aic = float("inf")
        best_order = None
        for p in range(self.max_p + 1):
            for q in range(self.max_q + 1):
                try:
                    aic = self._fit(values, (p, d, q)).aic
                except (ValueError, np.linalg.LinAlgError) as e:
                    logger.debug(f"Failed to fit ARIMA({p},{d},{q}): {e}")
                    continue
                self.aic_values[(p, d, q)] = aic
                if np.isfinite(aic) and aic < best_aic:
                    best_aic = aic
                    best_order = (p, d, q)

        if best_order is None:
            raise ValueError("Automatic order selection found no fittable ARIMA order")

        logger.info(f"Selected {self.model_name} order {best_order} (AIC: {best_aic:.2f})")
        return best_order

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, self.min_train_size, "order estimation")

        self.selected_order = self._determine_order(values) if self.auto_order else self.order
        self.model_fit = self._fit(values, self.selected_order)

    def _predict_model(self, periods: int) -> np.ndarray:
        return self.model_fit.forecast(steps=periods)

    def get_fitted_order(self) -> Optional[Dict[str, Any]]:
        if self.selected_order is None:
            return None
        p, d, q = self.selected_order
        return {'p': p, 'd': d, 'q': q}


class SARIMAModel(ARIMAModel):
    """Seasonal ARIMA(p, d, q)(P, D, Q, s)."""

    def __init__(self, parameters=None, seasonal_period=None):
        super().__init__(parameters, seasonal_period)
        self.season_length = int(self.parameters.get('seasonal_period') or seasonal_period or 12)
        self.seasonal_pdq = (
            int(self.parameters.get('P', 1)),
            int(self.parameters.get('D', 1)),
            int(self.parameters.get('Q', 1)),
        )
        self.max_p = int(self.parameters.get('max_p', 1))
        self.max_q = int(self.parameters.get('max_q', 1))

    def _seasonal_order(self) -> Tuple[int, int, int, int]:
        P, D, Q = self.seasonal_pdq
        return (P, D, Q, self.season_length)

    def _fit_model(self, values: np.ndarray) -> None:
        self._check_length(values, self.season_length * 2, "two full seasons")
        if self.auto_order:
            # One seasonal difference once two seasons are available, no
            # seasonal AR/MA terms beyond first order.
            self.seasonal_pdq = (1, 1, 0) if len(values) < self.season_length * 3 else (1, 1, 1)
        super()._fit_model(values)

    def get_fitted_order(self) -> Optional[Dict[str, Any]]:
        order = super().get_fitted_order()
        if order is None:
            return None
        P, D, Q = self.seasonal_pdq
        order.update({'P': P, 'D': D, 'Q': Q, 's': self.season_length})
        return order

"""
Forecast accuracy metrics.

This module provides the metric computation shared by model validation,
walk-forward validation and time series cross-validation.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 50.0
MAX_CONFIDENCE = 95.0


@dataclass
class ValidationMetrics:
    """Accuracy statistics for a set of (actual, predicted) pairs."""

    accuracy: float
    mape: float
    rmse: float
    mae: float
    confidence: float = 0.0
    n_points: int = 0

    @classmethod
    def degenerate(cls) -> 'ValidationMetrics':
        """Result used when there is nothing meaningful to score."""
        return cls(accuracy=0.0, mape=100.0, rmse=math.inf, mae=math.inf, confidence=0.0)

    @property
    def is_degenerate(self) -> bool:
        return self.n_points == 0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class ForecastMetrics:
    """Accuracy metrics for sales forecasts."""

    @staticmethod
    def _clean_pairs(actual: Sequence[float], predicted: Sequence[float]):
        actual = np.asarray(actual, dtype=float)
        predicted = np.asarray(predicted, dtype=float)

        length = min(len(actual), len(predicted))
        actual = actual[:length]
        predicted = predicted[:length]

        mask = np.isfinite(actual) & np.isfinite(predicted)
        dropped = int(length - mask.sum())
        if dropped:
            logger.warning(f"Dropping {dropped} non-finite (actual, predicted) pairs")

        return actual[mask], predicted[mask]

    @staticmethod
    def calculate(actual: Sequence[float], predicted: Sequence[float]) -> ValidationMetrics:
        """
        Calculate accuracy, MAPE, RMSE and MAE.

        MAPE only uses points with a nonzero actual value; accuracy is
        ``max(0, 100 - MAPE)``.

        Parameters:
        ----------
        actual : Sequence[float]
            Observed values
        predicted : Sequence[float]
            Forecast values, aligned with ``actual``

        Returns:
        -------
        ValidationMetrics
            Metrics with the simple confidence estimate, or the degenerate
            result when no pair can be scored
        """
        y_true, y_pred = ForecastMetrics._clean_pairs(actual, predicted)

        if len(y_true) == 0:
            logger.warning("No valid predictions for metric calculation")
            return ValidationMetrics.degenerate()

        nonzero = y_true != 0
        if not nonzero.any():
            logger.warning("All actual values are zero, MAPE is undefined")
            return ValidationMetrics.degenerate()

        mape = float(np.mean(np.abs(y_true[nonzero] - y_pred[nonzero]) / np.abs(y_true[nonzero])) * 100)
        accuracy = max(0.0, 100.0 - mape)
        rmse = float(np.sqrt(mean_squared_error(y_true, y_pred)))
        mae = float(mean_absolute_error(y_true, y_pred))

        return ValidationMetrics(
            accuracy=accuracy,
            mape=mape,
            rmse=rmse,
            mae=mae,
            confidence=ForecastMetrics.simple_confidence(accuracy, mape),
            n_points=len(y_true)
        )

    @staticmethod
    def simple_confidence(accuracy: float, mape: float) -> float:
        """Confidence penalized by the MAPE, clamped to [0, 95]."""
        return float(min(MAX_CONFIDENCE, max(0.0, accuracy - mape * 0.2)))

    @staticmethod
    def consistency_confidence(accuracy: float,
                               step_accuracies: Sequence[float],
                               recent_window: Optional[int] = None) -> float:
        """
        Confidence blending accuracy with the stability of step scores.

        Consistency compares the mean accuracy of the most recent steps with
        the mean over all steps; a model that degrades on recent data loses
        confidence. The result is clamped to [50, 95].
        """
        scores = np.asarray(step_accuracies, dtype=float)

        if len(scores) < 2:
            consistency = 1.0
        else:
            window = recent_window or max(1, len(scores) // 2)
            recent = float(np.mean(scores[-window:]))
            overall = float(np.mean(scores))
            consistency = max(0.0, 1.0 - abs(recent - overall) / max(overall, 1.0))

        blended = 0.7 * accuracy + 0.3 * consistency * 100
        return float(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, blended)))

    @staticmethod
    def standard_deviation(values: Sequence[float]) -> float:
        """Population standard deviation, 0 for an empty sequence."""
        if len(values) == 0:
            return 0.0
        return float(np.std(np.asarray(values, dtype=float)))

"""
Time-respecting validation of forecasters.

Walk-forward validation and k-fold time series cross-validation both only
ever train on data preceding the block they forecast. Degenerate inputs
produce a zero-accuracy result instead of an exception because the result
feeds ranking logic.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import ValidationConfig
from ..evaluation.metrics import ForecastMetrics, ValidationMetrics

logger = logging.getLogger(__name__)

Forecaster = Callable[[np.ndarray, int], Sequence[float]]
ForecasterFactory = Callable[[Dict[str, Any]], Forecaster]


@dataclass
class AcceptanceDecision:
    """Outcome of comparing suggested parameters against a baseline."""

    accepted: bool
    reason: str
    improvement: float
    confidence: float
    parameters: Dict[str, Any] = field(default_factory=dict)
    baseline: Optional[ValidationMetrics] = None
    suggested: Optional[ValidationMetrics] = None


class ValidationEngine:
    """Walk-forward and cross-validation scoring."""

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()

    @staticmethod
    def _values(series) -> np.ndarray:
        if isinstance(series, pd.Series):
            return series.to_numpy(dtype=float)
        return np.asarray(series, dtype=float)

    @property
    def min_train_size(self) -> int:
        return max(2, self.config.min_validation_size - self.config.test_size)

    def calculate_metrics(self, actual: Sequence[float], predicted: Sequence[float]) -> ValidationMetrics:
        return ForecastMetrics.calculate(actual, predicted)

    def _run_blocks(self, values: np.ndarray, forecaster: Forecaster,
                    blocks: List[tuple], label: str) -> ValidationMetrics:
        all_actual: List[float] = []
        all_predicted: List[float] = []
        block_accuracies: List[float] = []

        for number, (train_end, test_start, test_end) in enumerate(blocks):
            actual = values[test_start:test_end]
            try:
                predictions = np.asarray(forecaster(values[:train_end], len(actual)), dtype=float)
            except Exception as e:
                logger.debug(f"{label} block {number} failed: {e}")
                continue

            predictions = predictions[:len(actual)]
            if len(predictions) == 0:
                continue

            block = ForecastMetrics.calculate(actual, predictions)
            if not block.is_degenerate:
                block_accuracies.append(block.accuracy)

            all_actual.extend(actual[:len(predictions)])
            all_predicted.extend(predictions)

        metrics = ForecastMetrics.calculate(all_actual, all_predicted)
        if metrics.is_degenerate:
            return metrics

        metrics.confidence = ForecastMetrics.consistency_confidence(metrics.accuracy, block_accuracies)
        logger.debug(
            f"{label}: {len(block_accuracies)} blocks, accuracy {metrics.accuracy:.2f}%, "
            f"confidence {metrics.confidence:.1f}%"
        )
        return metrics

    def walk_forward(self, series, forecaster: Forecaster) -> ValidationMetrics:
        """
        Walk-forward validation.

        Starts from a minimum training window and forecasts the following
        ``test_size`` points, then grows the window by one test block and
        repeats, for at most ``max_steps`` blocks. Stops as soon as a full
        test block no longer fits.

        Parameters:
        ----------
        series : pd.Series or array-like
            Values in time order
        forecaster : callable
            ``forecaster(train_values, periods)`` returning ``periods`` forecasts

        Returns:
        -------
        ValidationMetrics
            Metrics over all forecast blocks, with the step-consistency
            confidence; degenerate when nothing could be scored
        """
        values = self._values(series)
        n = len(values)
        test_size = self.config.test_size

        if n < self.config.min_validation_size:
            logger.debug(f"Walk-forward skipped: {n} points < {self.config.min_validation_size}")
            return ValidationMetrics.degenerate()

        min_train = max(self.min_train_size, int(math.floor(n * 0.3)))
        blocks = []
        for step in range(self.config.max_steps):
            train_end = min_train + step * test_size
            if train_end + test_size > n:
                break
            blocks.append((train_end, train_end, train_end + test_size))

        if not blocks:
            logger.debug(f"Walk-forward skipped: no full test block after {min_train} training points")
            return ValidationMetrics.degenerate()

        return self._run_blocks(values, forecaster, blocks, "Walk-forward")

    def cross_validate(self, series, forecaster: Forecaster, k: Optional[int] = None) -> ValidationMetrics:
        """
        K-fold time series cross-validation.

        The series is cut into ``k`` contiguous folds. Each fold is forecast
        from the points strictly before it; folds without enough preceding
        data are skipped.
        """
        values = self._values(series)
        n = len(values)

        if n < self.config.min_validation_size:
            logger.debug(f"Cross-validation skipped: {n} points < {self.config.min_validation_size}")
            return ValidationMetrics.degenerate()

        folds = max(1, min(k or self.config.folds, n // self.min_train_size))
        fold_size = n // folds

        blocks = []
        for fold in range(folds):
            test_start = fold * fold_size
            test_end = n if fold == folds - 1 else (fold + 1) * fold_size
            if test_start < self.min_train_size:
                logger.debug(f"Cross-validation fold {fold} skipped: {test_start} training points")
                continue
            blocks.append((test_start, test_start, test_end))

        if not blocks:
            return ValidationMetrics.degenerate()

        return self._run_blocks(values, forecaster, blocks, "Cross-validation")

    def score(self, series, forecaster: Forecaster) -> ValidationMetrics:
        """Score with the configured strategy."""
        if self.config.use_walk_forward:
            return self.walk_forward(series, forecaster)
        return self.cross_validate(series, forecaster)

    def accept_suggested_parameters(self,
                                    forecaster_factory: ForecasterFactory,
                                    series,
                                    baseline_parameters: Dict[str, Any],
                                    suggested_parameters: Dict[str, Any],
                                    suggested_confidence: float = 70.0) -> AcceptanceDecision:
        """
        Decide whether suggested parameters should replace a baseline.

        Both parameter sets are scored with the configured strategy. The
        suggestion is accepted on a significant improvement, when it comes
        with high confidence and performs within tolerance (or degrades only
        slightly), or on any improvement at all.

        Parameters:
        ----------
        forecaster_factory : callable
            Builds a forecaster for a parameter set
        series : pd.Series or array-like
            Values in time order
        baseline_parameters : dict
            Parameters currently in use
        suggested_parameters : dict
            Parameters proposed by an external optimizer
        suggested_confidence : float
            Confidence reported with the suggestion (0-100)

        Returns:
        -------
        AcceptanceDecision
            Decision, reason and the confidence to record when accepted
        """
        values = self._values(series)
        if len(values) < self.config.min_validation_size * 2:
            logger.info(f"Suggestion rejected: insufficient data for validation ({len(values)} points)")
            return AcceptanceDecision(
                accepted=False,
                reason='insufficient data for validation',
                improvement=0.0,
                confidence=0.0,
                parameters=dict(baseline_parameters)
            )

        baseline = self.score(values, forecaster_factory(baseline_parameters))
        suggested = self.score(values, forecaster_factory(suggested_parameters))
        improvement = suggested.accuracy - baseline.accuracy

        significant = improvement >= self.config.significant_improvement
        within_tolerance = abs(improvement) <= self.config.tolerance
        minor_degradation = -self.config.minor_degradation <= improvement < 0
        high_confidence = suggested_confidence >= self.config.min_confidence_for_acceptance

        if significant:
            reason = 'significant improvement'
        elif high_confidence and (within_tolerance or minor_degradation):
            reason = 'high confidence with acceptable performance'
        elif improvement > 0:
            reason = 'any improvement accepted'
        else:
            reason = None

        if reason is None:
            logger.info(
                f"Suggestion rejected: improvement {improvement:.2f}% "
                f"(tolerance {self.config.tolerance}%, confidence {suggested_confidence:.0f}%)"
            )
            return AcceptanceDecision(
                accepted=False,
                reason='no improvement over baseline',
                improvement=improvement,
                confidence=0.0,
                parameters=dict(baseline_parameters),
                baseline=baseline,
                suggested=suggested
            )

        confidence = min(95.0, suggested_confidence + max(0.0, improvement * 2))
        logger.info(f"Suggestion accepted ({reason}): improvement {improvement:.2f}%")
        return AcceptanceDecision(
            accepted=True,
            reason=reason,
            improvement=improvement,
            confidence=confidence,
            parameters=dict(suggested_parameters),
            baseline=baseline,
            suggested=suggested
        )

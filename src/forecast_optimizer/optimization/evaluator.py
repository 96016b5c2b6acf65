"""
Single-combination model evaluation.

Trains one model instance with one parameter set and scores it. Any
exception becomes a failed ``EvaluationResult``; one bad combination never
aborts a search.
"""

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from ..models.registry import ModelRegistry
from .validation import ValidationEngine

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Outcome of evaluating one (model, parameters) combination."""

    model_type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    accuracy: float = 0.0
    mape: float = math.inf
    rmse: float = math.inf
    mae: float = math.inf
    success: bool = False
    error: Optional[str] = None
    duration_ms: float = 0.0
    confidence: float = 0.0

    @classmethod
    def failure(cls, model_type: str, parameters: Dict[str, Any], error: str,
                duration_ms: float = 0.0) -> 'EvaluationResult':
        return cls(
            model_type=model_type,
            parameters=dict(parameters),
            success=False,
            error=error,
            duration_ms=duration_ms
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Evaluator:
    """Evaluates parameter combinations for registered models."""

    def __init__(self, registry: ModelRegistry, validation_engine: Optional[ValidationEngine] = None):
        self.registry = registry
        self.validation_engine = validation_engine or ValidationEngine()

    def evaluate(self, model_id: str, parameters: Dict[str, Any],
                 train: pd.Series, validation: pd.Series,
                 seasonal_period: Optional[int] = None) -> EvaluationResult:
        """
        Train on ``train`` and score against ``validation``.

        When the model ran in auto mode and reports its fitted order, the
        order is merged into the returned parameters.
        """
        start = time.perf_counter()
        try:
            model = self.registry.create_model(model_id, parameters, seasonal_period)
            model.train(train)
            metrics = model.validate(validation)

            if metrics.is_degenerate:
                raise ValueError("Validation produced no scorable predictions")

            result_parameters = dict(parameters)
            if result_parameters.get('auto') and model.supports_fitted_order:
                fitted_order = model.get_fitted_order()
                if fitted_order:
                    result_parameters.update(fitted_order)

            return EvaluationResult(
                model_type=model_id,
                parameters=result_parameters,
                accuracy=metrics.accuracy,
                mape=metrics.mape,
                rmse=metrics.rmse,
                mae=metrics.mae,
                success=True,
                duration_ms=(time.perf_counter() - start) * 1000,
                confidence=metrics.confidence
            )

        except Exception as e:
            logger.warning(
                f"Evaluation failed for {model_id} {parameters} "
                f"(train={len(train)}, validation={len(validation)}): {e}"
            )
            return EvaluationResult.failure(
                model_id, parameters, str(e) or e.__class__.__name__,
                duration_ms=(time.perf_counter() - start) * 1000
            )

    def score(self, model_id: str, parameters: Dict[str, Any], series: pd.Series,
              seasonal_period: Optional[int] = None,
              strategy: str = 'walk_forward') -> EvaluationResult:
        """
        Score a combination over the whole series with the validation engine.

        Parameters:
        ----------
        strategy : str
            ``walk_forward`` or ``cross_validation``
        """
        start = time.perf_counter()
        fitted_orders = []

        def forecaster(train_values: np.ndarray, periods: int) -> np.ndarray:
            model = self.registry.create_model(model_id, parameters, seasonal_period)
            model.train(train_values)
            if parameters.get('auto') and model.supports_fitted_order:
                fitted_orders.append(model.get_fitted_order())
            return model.predict(periods)

        try:
            if strategy == 'cross_validation':
                metrics = self.validation_engine.cross_validate(series, forecaster)
            elif strategy == 'walk_forward':
                metrics = self.validation_engine.walk_forward(series, forecaster)
            else:
                raise ValueError(f"Unknown scoring strategy: {strategy}")
        except Exception as e:
            logger.warning(f"Scoring failed for {model_id} {parameters}: {e}")
            return EvaluationResult.failure(model_id, parameters, str(e),
                                            duration_ms=(time.perf_counter() - start) * 1000)

        duration_ms = (time.perf_counter() - start) * 1000
        if metrics.is_degenerate:
            return EvaluationResult.failure(
                model_id, parameters, f"{strategy} validation produced no scorable blocks", duration_ms
            )

        result_parameters = dict(parameters)
        if fitted_orders and fitted_orders[-1]:
            # order chosen on the longest training window
            result_parameters.update(fitted_orders[-1])

        return EvaluationResult(
            model_type=model_id,
            parameters=result_parameters,
            accuracy=metrics.accuracy,
            mape=metrics.mape,
            rmse=metrics.rmse,
            mae=metrics.mae,
            success=True,
            duration_ms=duration_ms,
            confidence=metrics.confidence
        )

"""
Grid search over model parameter spaces.

A run validates the series, drops models the training window cannot
support, builds every model's parameter grid, evaluates each combination on
a single train/validation split and ranks the results by accuracy.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config import OptimizerConfig, SettingsStore
from ..core.event_system import EventBus, EventEmitter, EventPriority, EventType
from ..exceptions import DataValidationError, NoCompatibleModelsError, SearchFailedError
from ..models.registry import ModelRegistry, create_default_registry
from .compatibility import CompatibilityReport, ModelCompatibilityFilter
from .data_validator import DataValidator
from .evaluator import EvaluationResult, Evaluator
from .grid import OverrideGrid, ParameterGridGenerator, ParameterSet, SeasonalPeriodResolver
from .validation import ValidationEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]


@dataclass
class SearchSummary:
    """Ranked results of one grid search run."""

    results: List[EvaluationResult]
    best_result: Optional[EvaluationResult]
    per_model_summary: Dict[str, Dict[str, Any]]
    training_size: int
    validation_size: int
    model_compatibility: CompatibilityReport
    seasonal_period: int = 12
    statistics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [r.to_dict() for r in self.results],
            'best_result': self.best_result.to_dict() if self.best_result else None,
            'per_model_summary': self.per_model_summary,
            'training_size': self.training_size,
            'validation_size': self.validation_size,
            'model_compatibility': self.model_compatibility.to_dict(),
            'seasonal_period': self.seasonal_period,
            'statistics': self.statistics
        }


class GridOptimizer(EventEmitter):
    """
    Grid search orchestrator.

    Combinations are evaluated one at a time in model order then grid order.
    After each evaluation a ``COMBINATION_EVALUATED`` event is published on
    the event bus for observers, and the progress callback passed to
    ``run_grid_search`` is called with the same payload. The callback belongs
    to its run only, so concurrent runs on one optimizer never see each
    other's progress; an exception raised by the callback aborts its run.
    """

    def __init__(self,
                 registry: Optional[ModelRegistry] = None,
                 config: Optional[OptimizerConfig] = None,
                 settings: Optional[SettingsStore] = None,
                 event_bus: Optional[EventBus] = None,
                 validator: Optional[DataValidator] = None):
        super().__init__(event_bus or EventBus(), 'grid_optimizer')
        self.registry = registry or create_default_registry()
        self.config = config or OptimizerConfig()

        search = self.config.search
        self.resolver = SeasonalPeriodResolver(settings, default=search.default_seasonal_period)
        self.grid = ParameterGridGenerator(self.registry, self.resolver)
        self.validation_engine = ValidationEngine(self.config.validation)
        self.evaluator = Evaluator(self.registry, self.validation_engine)
        self.validator = validator or DataValidator(config=search)
        self.compatibility = ModelCompatibilityFilter(self.registry, search.validation_ratio)

    def split_data(self, series: pd.Series) -> Tuple[pd.Series, pd.Series]:
        """Split into training and validation sets at ``1 - validation_ratio``."""
        split_index = int(math.floor(len(series) * (1 - self.config.search.validation_ratio)))
        return series.iloc[:split_index], series.iloc[split_index:]

    def build_plan(self, model_ids: Sequence[str], seasonal_period: int,
                   override_grids: Optional[Mapping[str, OverrideGrid]] = None) -> List[Tuple[str, List[ParameterSet]]]:
        """Parameter sets per model, in evaluation order."""
        override_grids = override_grids or {}
        plan = []
        for model_id in model_ids:
            combinations = self.grid.combinations(model_id, seasonal_period, override_grids.get(model_id))
            logger.debug(f"{model_id}: {len(combinations)} combinations")
            plan.append((model_id, combinations))
        return plan

    def _evaluate(self, model_id: str, parameters: ParameterSet, series: pd.Series,
                  train: pd.Series, validation: pd.Series, seasonal_period: int) -> EvaluationResult:
        scoring = self.config.search.scoring
        if scoring == 'holdout':
            return self.evaluator.evaluate(model_id, parameters, train, validation, seasonal_period)
        return self.evaluator.score(model_id, parameters, series, seasonal_period, strategy=scoring)

    def run_grid_search(self,
                        series,
                        model_ids: Optional[Sequence[str]] = None,
                        progress_callback: Optional[ProgressCallback] = None,
                        frequency: Optional[str] = None,
                        seasonal_period: Optional[int] = None,
                        override_grids: Optional[Mapping[str, OverrideGrid]] = None) -> SearchSummary:
        """
        Run a grid search over the requested models.

        Parameters:
        ----------
        series : pd.Series, pd.DataFrame or iterable
            Sales series in time order
        model_ids : Sequence[str], optional
            Models to search; defaults to every model included in grid search
        progress_callback : callable, optional
            Receives one progress dict per evaluated combination with
            ``completed``, ``total``, ``percentage``, ``current_model``,
            ``current_parameters`` and ``latest_result``; exceptions it
            raises propagate and stop the search
        frequency : str, optional
            Series frequency used to derive the seasonal period
        seasonal_period : int, optional
            Explicit seasonal period
        override_grids : mapping, optional
            Per-model grids replacing the registered parameter space for
            this run only

        Returns:
        -------
        SearchSummary
            Results sorted by accuracy, descending

        Raises:
        ------
        DataValidationError
            If the series is unusable
        NoCompatibleModelsError
            If no model has enough training observations
        SearchFailedError
            If no model has a parameter combination to evaluate, or no
            combination succeeded
        """
        self.emit_event(EventType.SEARCH_STARTED, {'message': 'Grid search started'})

        try:
            cleaned = self.validator.validate_and_preprocess(series)
            self.emit_event(EventType.DATA_VALIDATED, {'message': f"{len(cleaned)} points", 'points': len(cleaned)})

            requested = list(model_ids) if model_ids else self.registry.available_models(grid_search_only=True)
            period = self.resolver.resolve(seasonal_period, frequency)

            report = self.compatibility.filter(cleaned, requested, period)
            self.emit_event(EventType.MODELS_FILTERED, {
                'message': f"{len(report.valid_models)} of {len(requested)} models compatible",
                'valid_models': report.valid_models,
                'invalid_models': report.invalid_models
            })

            plan = self.build_plan(report.valid_models, period, override_grids)
            total = sum(len(combinations) for _, combinations in plan)
            self.emit_event(EventType.GRIDS_RESOLVED, {
                'message': f"{total} combinations, seasonal period {period}",
                'total': total,
                'seasonal_period': period
            })
            if total == 0:
                raise SearchFailedError(
                    f"No parameter combinations to evaluate for seasonal period {period} "
                    f"(models: {', '.join(report.valid_models)})"
                )

            train, validation = self.split_data(cleaned)
            if len(train) == 0 or len(validation) == 0:
                raise DataValidationError(["Insufficient data for training and validation split"])

        except (DataValidationError, NoCompatibleModelsError, SearchFailedError) as e:
            logger.error(f"Grid search rejected input: {e}")
            self.emit_event(EventType.SEARCH_FAILED, {'message': str(e), 'error': str(e)}, EventPriority.HIGH)
            raise

        logger.info(
            f"Starting grid search: {total} combinations across {len(plan)} models "
            f"(train={len(train)}, validation={len(validation)}, seasonal period={period})"
        )

        results: List[EvaluationResult] = []
        for model_id, combinations in plan:
            for parameters in combinations:
                result = self._evaluate(model_id, parameters, cleaned, train, validation, period)
                results.append(result)
                progress = {
                    'completed': len(results),
                    'total': total,
                    'percentage': round(len(results) / total * 100, 1),
                    'current_model': model_id,
                    'current_parameters': dict(parameters),
                    'latest_result': result.to_dict()
                }
                self.emit_event(EventType.COMBINATION_EVALUATED, progress)
                if progress_callback:
                    progress_callback(dict(progress))

        successes = [r for r in results if r.success]
        if not successes:
            message = f"All {len(results)} parameter combinations failed"
            logger.error(message)
            self.emit_event(EventType.SEARCH_FAILED, {'message': message, 'error': message}, EventPriority.HIGH)
            raise SearchFailedError(message, results)

        ranked = sorted(results, key=lambda r: r.accuracy, reverse=True)
        # failures score 0 accuracy and can tie with a poor success
        best = next(r for r in ranked if r.success)
        statistics = self.generate_summary(ranked)

        logger.info(
            f"Grid search finished: {len(successes)}/{len(results)} combinations succeeded, "
            f"best {best.model_type} at {best.accuracy:.2f}%"
        )
        self.emit_event(EventType.SEARCH_COMPLETED, {
            'message': f"{len(successes)}/{len(results)} succeeded",
            'statistics': statistics
        })

        return SearchSummary(
            results=ranked,
            best_result=best,
            per_model_summary=self._per_model_summary(plan, results),
            training_size=len(train),
            validation_size=len(validation),
            model_compatibility=report,
            seasonal_period=period,
            statistics=statistics
        )

    def _per_model_summary(self, plan, results: List[EvaluationResult]) -> Dict[str, Dict[str, Any]]:
        summary = {}
        for model_id, combinations in plan:
            model_results = [r for r in results if r.model_type == model_id]
            best = self.best_for_model(model_results, model_id)
            accuracies = [r.accuracy for r in model_results if r.success]
            summary[model_id] = {
                'combinations': len(combinations),
                'successful': len(accuracies),
                'failed': len(model_results) - len(accuracies),
                'best_accuracy': best.accuracy if best else 0.0,
                'best_parameters': dict(best.parameters) if best else None,
                'mean_accuracy': float(np.mean(accuracies)) if accuracies else 0.0
            }
        return summary

    @staticmethod
    def generate_summary(results: Sequence[EvaluationResult]) -> Dict[str, float]:
        """
        Statistics over a result list.

        Mean, best, worst and standard deviation use successful results
        only; all are zero when nothing succeeded.
        """
        accuracies = np.array([r.accuracy for r in results if r.success], dtype=float)
        total = len(results)

        if len(accuracies) == 0:
            return {
                'total': total,
                'successful': 0,
                'failed': total,
                'success_rate': 0.0,
                'mean_accuracy': 0.0,
                'best_accuracy': 0.0,
                'worst_accuracy': 0.0,
                'std_accuracy': 0.0
            }

        return {
            'total': total,
            'successful': len(accuracies),
            'failed': total - len(accuracies),
            'success_rate': len(accuracies) / total * 100,
            'mean_accuracy': float(accuracies.mean()),
            'best_accuracy': float(accuracies.max()),
            'worst_accuracy': float(accuracies.min()),
            'std_accuracy': float(accuracies.std())
        }

    @staticmethod
    def best_for_model(results: Sequence[EvaluationResult], model_id: str) -> Optional[EvaluationResult]:
        candidates = [r for r in results if r.success and r.model_type == model_id]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.accuracy)

    @staticmethod
    def top_results(results: Sequence[EvaluationResult], n: int = 10) -> List[EvaluationResult]:
        successes = [r for r in results if r.success]
        return sorted(successes, key=lambda r: r.accuracy, reverse=True)[:n]

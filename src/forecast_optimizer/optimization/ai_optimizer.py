"""
AI-refined parameter search.

Runs a quick grid search, narrows each model's numeric parameters to the
range covered by its best results, and searches that range with a focused
five-point grid. The focused grids are passed to the orchestrator per run;
the orchestrator itself is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..evaluation.metrics import ForecastMetrics
from ..models.registry import ModelSpec
from .evaluator import EvaluationResult
from .grid_optimizer import GridOptimizer, ProgressCallback, SearchSummary

logger = logging.getLogger(__name__)

TOP_FRACTION = 0.2
FOCUSED_POINTS = 5
COLLAPSED_STEP = 0.1

# Parameters that describe the run rather than the model fit
RESERVED_PARAMETERS = ('seasonal_period', 'auto')


@dataclass
class AIOptimizationResult:
    summary: SearchSummary
    top_results: List[EvaluationResult]
    model_breakdown: Dict[str, Dict[str, Any]]
    promising_ranges: Dict[str, Dict[str, Dict[str, Any]]]
    confidence: float

    @property
    def best_result(self) -> Optional[EvaluationResult]:
        return self.summary.best_result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'ai',
            **self.summary.to_dict(),
            'top_results': [r.to_dict() for r in self.top_results],
            'model_breakdown': self.model_breakdown,
            'ai_insights': {
                'promising_ranges': self.promising_ranges,
                'confidence': self.confidence
            }
        }


class AIOptimizer:
    """Two-phase search: quick grid, then a grid focused on promising ranges."""

    def __init__(self, optimizer: Optional[GridOptimizer] = None):
        self.optimizer = optimizer or GridOptimizer()

    @staticmethod
    def _with_phase(callback: Optional[ProgressCallback], phase: str) -> Optional[ProgressCallback]:
        if callback is None:
            return None
        return lambda progress: callback({**progress, 'phase': phase})

    def run(self, series, model_ids: Optional[Sequence[str]] = None,
            progress_callback: Optional[ProgressCallback] = None,
            frequency: Optional[str] = None,
            seasonal_period: Optional[int] = None) -> AIOptimizationResult:
        """
        Run the quick and focused searches.

        Parameters:
        ----------
        series : pd.Series, pd.DataFrame or iterable
            Sales series in time order
        model_ids : Sequence[str], optional
            Models to search
        progress_callback : callable, optional
            Receives progress dicts tagged with ``phase`` ``analysis`` or
            ``refinement``

        Returns:
        -------
        AIOptimizationResult
            Focused search summary with the consistency confidence
        """
        logger.info("Running AI-refined optimization")

        quick = self.optimizer.run_grid_search(
            series, model_ids,
            progress_callback=self._with_phase(progress_callback, 'analysis'),
            frequency=frequency,
            seasonal_period=seasonal_period
        )

        ranges = self.analyze_promising_ranges(quick.results)
        focused_grids = self.build_focused_grids(ranges, quick.results)

        focused = self.optimizer.run_grid_search(
            series, model_ids,
            progress_callback=self._with_phase(progress_callback, 'refinement'),
            frequency=frequency,
            seasonal_period=quick.seasonal_period,
            override_grids=focused_grids
        )

        confidence = self.calculate_confidence(focused.results)
        logger.info(f"AI-refined optimization finished with confidence {confidence:.1f}%")

        return AIOptimizationResult(
            summary=focused,
            top_results=GridOptimizer.top_results(focused.results, 5),
            model_breakdown=self.model_breakdown(focused.results),
            promising_ranges=ranges,
            confidence=confidence
        )

    @staticmethod
    def _is_number(value: Any) -> bool:
        return isinstance(value, (int, float, np.number)) and not isinstance(value, bool)

    def analyze_promising_ranges(self, results: Sequence[EvaluationResult]) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Min, max and mean of each numeric parameter over the top 20% of each model's results."""
        groups: Dict[str, List[EvaluationResult]] = {}
        for result in results:
            if result.success:
                groups.setdefault(result.model_type, []).append(result)

        ranges = {}
        for model_id, model_results in groups.items():
            model_results = sorted(model_results, key=lambda r: r.accuracy, reverse=True)
            top = model_results[:max(1, int(len(model_results) * TOP_FRACTION))]

            parameter_ranges = {}
            for name, first_value in top[0].parameters.items():
                if name in RESERVED_PARAMETERS or not self._is_number(first_value):
                    continue
                values = [r.parameters[name] for r in top if self._is_number(r.parameters.get(name))]
                parameter_ranges[name] = {
                    'min': min(values),
                    'max': max(values),
                    'avg': float(np.mean(values)),
                    'integer': all(isinstance(v, (int, np.integer)) for v in values)
                }
            ranges[model_id] = parameter_ranges

        return ranges

    def build_focused_grids(self, ranges: Dict[str, Dict[str, Dict[str, Any]]],
                            results: Sequence[EvaluationResult]) -> Dict[str, Dict[str, List[Any]]]:
        """Five evenly spaced values across each promising range."""
        grids = {}
        for model_id, parameter_ranges in ranges.items():
            spec: ModelSpec = self.optimizer.registry.get_spec(model_id)
            if spec.auto_order_search:
                continue

            grid: Dict[str, List[Any]] = {}
            for name, bounds in parameter_ranges.items():
                low, high = bounds['min'], bounds['max']
                if high > low:
                    step = (high - low) / (FOCUSED_POINTS - 1)
                    values = [low + i * step for i in range(FOCUSED_POINTS - 1)] + [high]
                else:
                    # collapsed range: spread around the single value
                    centre = FOCUSED_POINTS // 2
                    values = [low + (i - centre) * COLLAPSED_STEP for i in range(FOCUSED_POINTS)]

                limits = self._registered_bounds(spec, name)
                if limits is not None:
                    values = [min(max(v, limits[0]), limits[1]) for v in values]

                if bounds['integer']:
                    grid[name] = sorted({int(round(v)) for v in values})
                else:
                    grid[name] = sorted({round(float(v), 4) for v in values})

            # keep categorical choices seen among the best results
            best = GridOptimizer.best_for_model(results, model_id)
            if best is not None:
                for name, value in best.parameters.items():
                    if name not in grid and name not in RESERVED_PARAMETERS and not self._is_number(value):
                        grid[name] = [value]

            grids[model_id] = grid
        return grids

    @classmethod
    def _registered_bounds(cls, spec: ModelSpec, name: str) -> Optional[Tuple[float, float]]:
        """Smallest and largest registered grid value of a numeric parameter."""
        candidates = (spec.optimization_grid or {}).get(name) or []
        numbers = [v for v in candidates if cls._is_number(v)]
        if not numbers:
            return None
        return min(numbers), max(numbers)

    @staticmethod
    def calculate_confidence(results: Sequence[EvaluationResult]) -> float:
        """Confidence from the consistency and level of successful accuracies, within [5, 95]."""
        accuracies = [r.accuracy for r in results if r.success]
        if not accuracies:
            return 0.0

        mean_accuracy = float(np.mean(accuracies))
        if mean_accuracy <= 0:
            return 5.0

        consistency = 1 - ForecastMetrics.standard_deviation(accuracies) / mean_accuracy
        return float(min(95.0, max(5.0, (consistency * 0.6 + mean_accuracy / 100 * 0.4) * 100)))

    @staticmethod
    def model_breakdown(results: Sequence[EvaluationResult]) -> Dict[str, Dict[str, Any]]:
        breakdown: Dict[str, Dict[str, Any]] = {}
        for result in results:
            if not result.success:
                continue
            entry = breakdown.setdefault(result.model_type, {'count': 0, 'best_accuracy': 0.0, 'accuracies': []})
            entry['count'] += 1
            entry['accuracies'].append(result.accuracy)
            entry['best_accuracy'] = max(entry['best_accuracy'], result.accuracy)

        for entry in breakdown.values():
            entry['avg_accuracy'] = float(np.mean(entry['accuracies']))
        return breakdown

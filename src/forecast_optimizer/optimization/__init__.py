"""
Parameter optimization pipeline.

Data validation, model compatibility filtering, parameter grid generation,
single-combination evaluation, time-respecting validation and the grid
search orchestrator.
"""

from .ai_optimizer import AIOptimizationResult, AIOptimizer
from .compatibility import CompatibilityReport, ModelCompatibilityFilter
from .data_validator import DataValidator, ValueAccessor, compute_data_hash
from .evaluator import EvaluationResult, Evaluator
from .grid import ParameterGridGenerator, SeasonalPeriodResolver, parameter_key
from .grid_optimizer import GridOptimizer, SearchSummary
from .validation import AcceptanceDecision, ValidationEngine

__all__ = [
    'AIOptimizer',
    'AIOptimizationResult',
    'AcceptanceDecision',
    'CompatibilityReport',
    'DataValidator',
    'EvaluationResult',
    'Evaluator',
    'GridOptimizer',
    'ModelCompatibilityFilter',
    'ParameterGridGenerator',
    'SearchSummary',
    'SeasonalPeriodResolver',
    'ValidationEngine',
    'ValueAccessor',
    'compute_data_hash',
    'parameter_key'
]

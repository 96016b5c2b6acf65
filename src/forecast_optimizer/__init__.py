"""
Forecast model parameter optimizer.

Searches the parameter space of statistical forecasting models for a sales
series, caches the winning parameters per entity and tracks optimization
jobs run in the background.
"""

__version__ = "1.0.0"

from .config import OptimizerConfig
from .exceptions import (
    DataValidationError, NoCompatibleModelsError, OptimizerError, SearchFailedError
)
from .models.registry import ModelRegistry, create_default_registry
from .optimization.ai_optimizer import AIOptimizer
from .optimization.grid_optimizer import GridOptimizer

__all__ = [
    'AIOptimizer',
    'DataValidationError',
    'GridOptimizer',
    'ModelRegistry',
    'NoCompatibleModelsError',
    'OptimizerConfig',
    'OptimizerError',
    'SearchFailedError',
    'create_default_registry'
]

"""
Exception hierarchy for the parameter optimizer.

Input and compatibility problems are raised before any evaluation starts.
Per-combination failures are never raised; they are recorded as failed
evaluation results instead.
"""

from typing import Any, Dict, List, Optional


class OptimizerError(Exception):
    """Base class for optimizer errors."""


class DataValidationError(OptimizerError):
    """Raised when a series cannot be used for optimization."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__(f"Data validation failed: {'; '.join(self.issues)}")


class NoCompatibleModelsError(OptimizerError):
    """Raised when no requested model has enough training observations."""

    def __init__(self, invalid_models: List[Dict[str, Any]], training_length: int):
        self.invalid_models = list(invalid_models)
        self.training_length = training_length
        reasons = "; ".join(f"{m['model_id']}: {m['reason']}" for m in self.invalid_models)
        super().__init__(
            f"No compatible models for {training_length} training observations ({reasons})"
        )


class SearchFailedError(OptimizerError):
    """Raised when a search finished without a single successful evaluation."""

    def __init__(self, message: str, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        super().__init__(message)


class ModelContractError(OptimizerError):
    """Raised when a model class does not implement the forecasting contract."""


class InvalidJobTransitionError(OptimizerError):
    """Raised on an illegal job status transition."""


class JobFeedError(OptimizerError):
    """Raised when the job status feed cannot be read."""

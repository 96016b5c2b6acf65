"""Filters models by the number of training observations they need."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..exceptions import NoCompatibleModelsError
from ..models.registry import ModelRegistry

logger = logging.getLogger(__name__)


@dataclass
class CompatibilityReport:
    valid_models: List[str] = field(default_factory=list)
    invalid_models: List[Dict[str, Any]] = field(default_factory=list)
    training_length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid_models': list(self.valid_models),
            'invalid_models': [dict(m) for m in self.invalid_models],
            'training_length': self.training_length
        }


class ModelCompatibilityFilter:
    """Splits requested models into those the training window can support and the rest."""

    def __init__(self, registry: ModelRegistry, validation_ratio: float = 0.2):
        self.registry = registry
        self.validation_ratio = validation_ratio

    def training_length(self, series_length: int) -> int:
        return int(math.floor(series_length * (1 - self.validation_ratio)))

    def filter(self, series: Sequence[float], model_ids: Sequence[str],
               seasonal_period: int = 12) -> CompatibilityReport:
        """
        Check every model against the training window of ``series``.

        Raises:
        ------
        NoCompatibleModelsError
            If no model has enough training observations
        """
        report = CompatibilityReport(training_length=self.training_length(len(series)))

        for model_id in model_ids:
            if model_id not in self.registry:
                report.invalid_models.append({
                    'model_id': model_id,
                    'reason': f"Unknown model '{model_id}'"
                })
                continue

            required = self.registry.min_observations(model_id, seasonal_period)
            if report.training_length < required:
                report.invalid_models.append({
                    'model_id': model_id,
                    'reason': (
                        f"Requires at least {required} training observations, "
                        f"but only {report.training_length} available"
                    )
                })
            else:
                report.valid_models.append(model_id)

        for invalid in report.invalid_models:
            logger.info(f"Skipping {invalid['model_id']}: {invalid['reason']}")

        if not report.valid_models:
            raise NoCompatibleModelsError(report.invalid_models, report.training_length)

        return report

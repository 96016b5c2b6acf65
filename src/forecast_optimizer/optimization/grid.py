"""
Parameter grid generation.

Turns each model's declared parameter space into the list of parameter
sets the grid optimizer evaluates, and resolves the seasonal period that
seasonal grids depend on.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from ..config import FREQUENCY_KEY, SEASONAL_PERIODS_KEY, SettingsStore
from ..models.registry import ModelRegistry

logger = logging.getLogger(__name__)

ParameterSet = Dict[str, Any]
OverrideGrid = Union[Mapping[str, Sequence[Any]], Sequence[ParameterSet]]

FREQUENCY_PERIODS = {
    'daily': 7,
    'weekly': 7,
    'monthly': 12,
    'quarterly': 4,
    'yearly': 1,
}

DEFAULT_SEASONAL_PERIOD = 12


def parameter_key(parameters: Mapping[str, Any]) -> str:
    """Canonical serialized form of a parameter set, used as its identity."""
    return json.dumps(dict(parameters), sort_keys=True, default=str)


def period_for_frequency(frequency: Optional[str]) -> Optional[int]:
    if not frequency:
        return None
    return FREQUENCY_PERIODS.get(str(frequency).strip().lower())


class SeasonalPeriodResolver:
    """
    Resolves the seasonal period used by seasonal grids.

    Order: explicit period, explicit frequency, the persisted
    ``global_seasonalPeriods`` setting, the persisted ``global_frequency``
    setting, then the default of 12. A stage that cannot be used is logged
    and the next one is tried.
    """

    def __init__(self, settings: Optional[SettingsStore] = None,
                 default: int = DEFAULT_SEASONAL_PERIOD):
        self.settings = settings
        self.default = default

    @staticmethod
    def _positive_int(value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not number.is_integer() or number <= 0:
            return None
        return int(number)

    def _read_setting(self, key: str) -> Any:
        if self.settings is None:
            return None
        raw = self.settings.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not parse setting {key}={raw!r}: {e}")
            return None

    def resolve(self, explicit: Optional[Any] = None, frequency: Optional[str] = None) -> int:
        if explicit is not None:
            period = self._positive_int(explicit)
            if period is not None:
                return period
            logger.warning(f"Ignoring invalid explicit seasonal period {explicit!r}")

        if frequency is not None:
            period = period_for_frequency(frequency)
            if period is not None:
                return period
            logger.warning(f"Unknown frequency {frequency!r}, falling back to settings")

        stored_period = self._read_setting(SEASONAL_PERIODS_KEY)
        if stored_period is not None:
            period = self._positive_int(stored_period)
            if period is not None:
                return period
            logger.warning(f"Ignoring invalid {SEASONAL_PERIODS_KEY} setting {stored_period!r}")

        stored_frequency = self._read_setting(FREQUENCY_KEY)
        if stored_frequency is not None:
            period = period_for_frequency(stored_frequency) if isinstance(stored_frequency, str) else None
            if period is not None:
                return period
            logger.warning(f"Ignoring unknown {FREQUENCY_KEY} setting {stored_frequency!r}")

        logger.debug(f"Using default seasonal period {self.default}")
        return self.default


def iter_cartesian(grid: Mapping[str, Sequence[Any]]) -> Iterator[ParameterSet]:
    """
    Cartesian product of a parameter grid, last parameter varying fastest.

    Iterates with an index odometer instead of recursion.
    """
    names = list(grid.keys())
    choices = [list(grid[name]) for name in names]
    if any(len(values) == 0 for values in choices):
        return

    indices = [0] * len(names)
    while True:
        yield {name: choices[i][indices[i]] for i, name in enumerate(names)}

        position = len(names) - 1
        while position >= 0:
            indices[position] += 1
            if indices[position] < len(choices[position]):
                break
            indices[position] = 0
            position -= 1
        if position < 0:
            return


class ParameterGridGenerator:
    """Builds the parameter sets evaluated for each model."""

    def __init__(self, registry: ModelRegistry,
                 resolver: Optional[SeasonalPeriodResolver] = None):
        self.registry = registry
        self.resolver = resolver or SeasonalPeriodResolver()

    def combinations(self, model_id: str, seasonal_period: Optional[int] = None,
                     override_grid: Optional[OverrideGrid] = None) -> List[ParameterSet]:
        """
        Parameter sets to evaluate for ``model_id``.

        Parameters:
        ----------
        model_id : str
            Registered model id
        seasonal_period : int, optional
            Seasonal period of the series; resolved through the settings
            chain when omitted
        override_grid : mapping or list, optional
            Grid (name -> values) or explicit parameter sets replacing the
            registered parameter space for this call only

        Returns:
        -------
        List[ParameterSet]
            Parameter sets in evaluation order; empty when the model is
            excluded from grid search or cannot be seasonal for this period
        """
        spec = self.registry.get_spec(model_id)

        if not spec.include_in_grid_search:
            logger.debug(f"{model_id} is excluded from grid search")
            return []

        period = seasonal_period
        if period is None:
            period = self.resolver.resolve()

        if spec.is_seasonal and period <= 1:
            logger.info(f"{model_id} skipped: seasonal period {period} means no seasonality")
            return []

        if override_grid is not None:
            if isinstance(override_grid, Mapping):
                configs = list(iter_cartesian(override_grid))
            else:
                configs = [dict(config) for config in override_grid]
            return self._inject_period(spec.is_seasonal, configs, period)

        if spec.auto_order_search:
            return [{'auto': True, 'seasonal_period': period}]

        if spec.optimization_configs is not None:
            return [dict(config) for config in spec.optimization_configs]

        if spec.parameter_free:
            return [{}]

        if spec.optimization_grid:
            configs = list(iter_cartesian(spec.optimization_grid))
            return self._inject_period(spec.is_seasonal, configs, period)

        logger.warning(f"{model_id} declares no parameter space, evaluating defaults only")
        return [dict(spec.default_parameters)]

    @staticmethod
    def _inject_period(is_seasonal: bool, configs: List[ParameterSet], period: int) -> List[ParameterSet]:
        if not is_seasonal:
            return configs
        return [{**config, 'seasonal_period': period} for config in configs]

    def count(self, model_id: str, seasonal_period: Optional[int] = None,
              override_grid: Optional[OverrideGrid] = None) -> int:
        return len(self.combinations(model_id, seasonal_period, override_grid))

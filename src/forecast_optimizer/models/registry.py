"""
Model registry for the parameter optimizer.

The registry exposes the available model identifiers together with their
default parameters, the parameter space searched by the grid optimizer and
the minimum number of training observations each model needs.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, Union

from ..exceptions import ModelContractError
from .arima import ARIMAModel, SARIMAModel
from .base import ForecastModel
from .baseline import (
    LinearTrendModel, MovingAverageModel, SeasonalMovingAverageModel, SeasonalNaiveModel
)
from .smoothing import (
    DoubleExponentialSmoothingModel, HoltWintersModel, SimpleExponentialSmoothingModel
)

logger = logging.getLogger(__name__)

MinObservations = Union[int, Callable[[int], int]]


@dataclass
class ModelSpec:
    """
    Registry entry describing one forecasting model.

    ``optimization_grid`` maps parameter names to candidate values and is
    expanded as a cartesian product; ``optimization_configs`` is an explicit
    list of parameter sets used verbatim. ``min_observations`` is either a
    constant or a function of the seasonal period.
    """

    model_id: str
    display_name: str
    model_class: Type[ForecastModel]
    default_parameters: Dict[str, Any] = field(default_factory=dict)
    optimization_grid: Optional[Dict[str, List[Any]]] = None
    optimization_configs: Optional[List[Dict[str, Any]]] = None
    auto_order_search: bool = False
    is_seasonal: bool = False
    include_in_grid_search: bool = True
    parameter_free: bool = False
    min_observations: MinObservations = 2
    category: str = "baseline"
    description: str = ""

    def required_observations(self, seasonal_period: int) -> int:
        if callable(self.min_observations):
            return int(self.min_observations(seasonal_period))
        return int(self.min_observations)


class ModelRegistry:
    """Registry of forecasting models keyed by model id."""

    def __init__(self):
        self._specs: Dict[str, ModelSpec] = {}

    def register(self, spec: ModelSpec) -> None:
        """
        Register a model.

        Parameters:
        ----------
        spec : ModelSpec
            Model description; its class must implement ForecastModel

        Raises:
        ------
        ModelContractError
            If the class does not implement the forecasting contract
        """
        model_class = spec.model_class
        if not inspect.isclass(model_class) or not issubclass(model_class, ForecastModel):
            raise ModelContractError(
                f"Model class {model_class!r} for '{spec.model_id}' must inherit from ForecastModel"
            )
        if inspect.isabstract(model_class):
            missing = ', '.join(sorted(model_class.__abstractmethods__))
            raise ModelContractError(
                f"Model class {model_class.__name__} for '{spec.model_id}' does not implement: {missing}"
            )

        self._specs[spec.model_id] = spec
        logger.debug(f"Registered model: {spec.model_id} -> {model_class.__name__}")

    def available_models(self, grid_search_only: bool = False) -> List[str]:
        """Model ids in registration order."""
        return [
            model_id for model_id, spec in self._specs.items()
            if spec.include_in_grid_search or not grid_search_only
        ]

    def get_spec(self, model_id: str) -> ModelSpec:
        if model_id not in self._specs:
            available = ', '.join(self._specs.keys())
            raise KeyError(f"Unknown model type: {model_id}. Available: {available}")
        return self._specs[model_id]

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._specs

    def create_model(self, model_id: str, parameters: Optional[Dict[str, Any]] = None,
                     seasonal_period: Optional[int] = None) -> ForecastModel:
        """Instantiate a model with its defaults overridden by ``parameters``."""
        spec = self.get_spec(model_id)
        merged = {**spec.default_parameters, **(parameters or {})}
        return spec.model_class(merged, seasonal_period=seasonal_period)

    def min_observations(self, model_id: str, seasonal_period: int = 12) -> int:
        return self.get_spec(model_id).required_observations(seasonal_period)


def _steps(start: float, stop: float, step: float) -> List[float]:
    count = int(round((stop - start) / step)) + 1
    return [round(start + i * step, 2) for i in range(count)]


def create_default_registry() -> ModelRegistry:
    """Create a registry with the shipped models."""
    registry = ModelRegistry()

    registry.register(ModelSpec(
        model_id='moving_average',
        display_name='Moving Average',
        model_class=MovingAverageModel,
        default_parameters={'window': 3},
        optimization_grid={'window': [2, 3, 4, 5, 6, 7, 8, 9, 10, 12, 15, 20]},
        min_observations=2,
        description='Average of the most recent observations'
    ))
    registry.register(ModelSpec(
        model_id='simple_exponential_smoothing',
        display_name='Simple Exponential Smoothing',
        model_class=SimpleExponentialSmoothingModel,
        default_parameters={'alpha': 0.3},
        optimization_grid={'alpha': _steps(0.1, 0.9, 0.1)},
        min_observations=2,
        category='smoothing',
        description='Exponentially weighted level'
    ))
    registry.register(ModelSpec(
        model_id='double_exponential_smoothing',
        display_name="Holt's Linear Trend",
        model_class=DoubleExponentialSmoothingModel,
        default_parameters={'alpha': 0.3, 'beta': 0.1},
        optimization_grid={
            'alpha': _steps(0.1, 0.9, 0.1),
            'beta': _steps(0.05, 0.4, 0.05),
        },
        min_observations=4,
        category='smoothing',
        description='Exponential smoothing with a linear trend'
    ))
    registry.register(ModelSpec(
        model_id='linear_trend',
        display_name='Linear Trend',
        model_class=LinearTrendModel,
        parameter_free=True,
        min_observations=2,
        description='Least squares trend line'
    ))
    registry.register(ModelSpec(
        model_id='seasonal_moving_average',
        display_name='Seasonal Moving Average',
        model_class=SeasonalMovingAverageModel,
        default_parameters={'window': 3},
        optimization_grid={'window': [2, 3, 4]},
        is_seasonal=True,
        min_observations=lambda period: period,
        category='seasonal',
        description='Average of the same season across recent years'
    ))
    registry.register(ModelSpec(
        model_id='holt_winters',
        display_name='Holt-Winters',
        model_class=HoltWintersModel,
        default_parameters={'alpha': 0.3, 'beta': 0.1, 'gamma': 0.1, 'type': 'additive'},
        optimization_grid={
            'alpha': [0.1, 0.2, 0.3, 0.4, 0.5],
            'beta': [0.1, 0.2, 0.3, 0.4, 0.5],
            'gamma': [0.1, 0.2, 0.3, 0.4, 0.5],
            'type': ['additive', 'multiplicative'],
        },
        is_seasonal=True,
        min_observations=lambda period: period * 2,
        category='seasonal',
        description='Triple exponential smoothing'
    ))
    registry.register(ModelSpec(
        model_id='seasonal_naive',
        display_name='Seasonal Naive',
        model_class=SeasonalNaiveModel,
        is_seasonal=True,
        parameter_free=True,
        min_observations=lambda period: period,
        category='seasonal',
        description='Repeats the last season'
    ))
    registry.register(ModelSpec(
        model_id='arima',
        display_name='ARIMA',
        model_class=ARIMAModel,
        default_parameters={'p': 1, 'd': 1, 'q': 1},
        auto_order_search=True,
        min_observations=10,
        category='time_series',
        description='Autoregressive integrated moving average'
    ))
    registry.register(ModelSpec(
        model_id='sarima',
        display_name='SARIMA',
        model_class=SARIMAModel,
        default_parameters={'p': 1, 'd': 1, 'q': 1, 'P': 1, 'D': 1, 'Q': 1},
        auto_order_search=True,
        is_seasonal=True,
        min_observations=lambda period: period * 2,
        category='time_series',
        description='Seasonal ARIMA'
    ))

    logger.debug(f"Default registry created with {len(registry.available_models())} models")
    return registry

"""
Consolidated configuration for the parameter optimizer.

This module contains all configuration classes for the search, validation,
result cache and job polling layers, plus the read-only global settings
lookups used to resolve a default seasonal period.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SEASONAL_PERIODS_KEY = "global_seasonalPeriods"
FREQUENCY_KEY = "global_frequency"


@dataclass
class ValidationConfig:
    """Configuration for walk-forward and cross-validation scoring."""

    min_validation_size: int = 12
    max_steps: int = 5
    test_size: int = 6
    use_walk_forward: bool = True
    folds: int = 5
    tolerance: float = 2.0  # accuracy points
    min_confidence_for_acceptance: float = 60.0
    significant_improvement: float = 1.0
    minor_degradation: float = 0.5


@dataclass
class SearchConfig:
    """Configuration for the grid search orchestrator."""

    validation_ratio: float = 0.2
    min_points: int = 5
    min_distinct_values: int = 3
    default_seasonal_period: int = 12
    scoring: str = "holdout"  # holdout, walk_forward, cross_validation
    value_fields: tuple = ("Sales", "sales", "value", "amount")


@dataclass
class CacheConfig:
    """Configuration for the optimization result cache."""

    expiry_hours: float = 24.0
    hash_version: str = "v2"


@dataclass
class PollingConfig:
    """Configuration for job status polling."""

    interval_seconds: float = 5.0
    max_interval_seconds: float = 30.0
    backoff_multiplier: float = 2.0
    max_consecutive_errors: int = 3
    request_timeout_seconds: float = 10.0
    status_url: str = "http://localhost:3001/api/jobs/status"


@dataclass
class ScoringWeights:
    """Weights for the composite score used to rank models and methods."""

    mape: float = 0.4
    rmse: float = 0.3
    mae: float = 0.2
    accuracy: float = 0.1

    @classmethod
    def from_percentages(cls, mape: float = 40, rmse: float = 30,
                         mae: float = 20, accuracy: float = 10) -> 'ScoringWeights':
        """Build weights from the 0-100 values stored in global settings."""
        return cls(mape=mape / 100, rmse=rmse / 100, mae=mae / 100, accuracy=accuracy / 100)


@dataclass
class OptimizerConfig:
    """Main configuration class combining all settings."""

    validation: ValidationConfig = field(default_factory=ValidationConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    @classmethod
    def from_dict(cls, config_dict: Dict) -> 'OptimizerConfig':
        """Create configuration from dictionary."""
        search = dict(config_dict.get('search', {}))
        if 'value_fields' in search:
            search['value_fields'] = tuple(search['value_fields'])
        return cls(
            validation=ValidationConfig(**config_dict.get('validation', {})),
            search=SearchConfig(**search),
            cache=CacheConfig(**config_dict.get('cache', {})),
            polling=PollingConfig(**config_dict.get('polling', {})),
            weights=ScoringWeights(**config_dict.get('weights', {}))
        )

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> 'OptimizerConfig':
        """
        Create configuration from FORECAST_OPT_* environment variables.

        Parameters:
        ----------
        env_file : str or Path, optional
            .env file loaded before reading the environment

        Returns:
        -------
        OptimizerConfig
            Configuration with environment overrides applied
        """
        load_dotenv(env_file)
        config = cls()

        overrides = {
            'FORECAST_OPT_VALIDATION_RATIO': (config.search, 'validation_ratio', float),
            'FORECAST_OPT_SCORING': (config.search, 'scoring', str),
            'FORECAST_OPT_DEFAULT_SEASONAL_PERIOD': (config.search, 'default_seasonal_period', int),
            'FORECAST_OPT_CACHE_EXPIRY_HOURS': (config.cache, 'expiry_hours', float),
            'FORECAST_OPT_POLL_INTERVAL': (config.polling, 'interval_seconds', float),
            'FORECAST_OPT_POLL_MAX_INTERVAL': (config.polling, 'max_interval_seconds', float),
            'FORECAST_OPT_POLL_MAX_ERRORS': (config.polling, 'max_consecutive_errors', int),
            'FORECAST_OPT_STATUS_URL': (config.polling, 'status_url', str),
        }

        for env_name, (section, attr, cast) in overrides.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            try:
                setattr(section, attr, cast(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")

        return config


class SettingsStore(Protocol):
    """Read-only lookup of persisted global settings (raw JSON strings)."""

    def get(self, key: str) -> Optional[str]:
        ...


class InMemorySettingsStore:
    """Settings store backed by a dictionary of JSON-encoded values."""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, str] = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = json.dumps(value)

    def set_raw(self, key: str, raw: str) -> None:
        self._values[key] = raw

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)


class JsonFileSettingsStore:
    """Settings store reading a flat JSON object of raw setting values."""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)

    def get(self, key: str) -> Optional[str]:
        if not self.file_path.exists():
            return None

        with open(self.file_path, 'r') as f:
            settings = json.load(f)

        if key not in settings:
            return None
        value = settings[key]
        return value if isinstance(value, str) else json.dumps(value)

"""
Input validation for optimization series.

A series has to be usable before any model is evaluated: finite values,
not all zero, some variation and enough points. All detected problems are
reported together in one ``DataValidationError``.
"""

import hashlib
import logging
import math
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel

from ..config import SearchConfig
from ..exceptions import DataValidationError

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ('timestamp', 'date', 'Date')


class ValueAccessor:
    """
    Extracts the numeric value of one series point.

    Either checks a priority list of field names or delegates to a callable
    supplied by the caller. Returns None when the value is missing or cannot
    be parsed.
    """

    def __init__(self, fields: Sequence[str] = SearchConfig.value_fields,
                 getter: Optional[Callable[[Any], Any]] = None):
        self.fields = tuple(fields)
        self.getter = getter

    @classmethod
    def for_column(cls, column: str) -> 'ValueAccessor':
        return cls(fields=(column,))

    @staticmethod
    def parse(raw: Any) -> Optional[float]:
        if raw is None:
            return None
        if isinstance(raw, (int, float, np.number)):
            return float(raw)
        if isinstance(raw, str):
            try:
                return float(raw.strip())
            except ValueError:
                return None
        return None

    def __call__(self, point: Any) -> Optional[float]:
        if self.getter is not None:
            return self.parse(self.getter(point))

        if isinstance(point, (int, float, np.number, str)):
            return self.parse(point)
        if isinstance(point, BaseModel):
            point = point.model_dump()
        if isinstance(point, Mapping):
            for name in self.fields:
                if point.get(name) is not None:
                    return self.parse(point[name])
        return None


SeriesInput = Union[pd.Series, pd.DataFrame, Iterable[Any]]


class DataValidator:
    """Validates and preprocesses a raw series before a search."""

    def __init__(self, accessor: Optional[ValueAccessor] = None,
                 config: Optional[SearchConfig] = None):
        self.config = config or SearchConfig()
        self.accessor = accessor or ValueAccessor(self.config.value_fields)

    def _extract(self, series: SeriesInput) -> Tuple[List[float], Optional[pd.Index]]:
        if isinstance(series, pd.Series):
            records = series.tolist()
            index = series.index
        elif isinstance(series, pd.DataFrame):
            records = series.to_dict('records')
            index = series.index if isinstance(series.index, pd.DatetimeIndex) else None
        else:
            records = list(series)
            index = None

        values = []
        missing = 0
        for position, point in enumerate(records):
            value = self.accessor(point)
            if value is None:
                missing += 1
                logger.debug(f"Missing or unparseable value at position {position}: {point!r}")
                value = 0.0
            values.append(value)

        if missing:
            logger.warning(f"Coerced {missing} missing or unparseable values to 0")

        if index is None:
            index = self._timestamp_index(records)
        return values, index

    @staticmethod
    def _timestamp_index(records: List[Any]) -> Optional[pd.Index]:
        stamps = []
        for point in records:
            if isinstance(point, BaseModel):
                point = point.model_dump()
            if not isinstance(point, Mapping):
                return None
            stamp = next((point[name] for name in TIMESTAMP_FIELDS if point.get(name) is not None), None)
            if stamp is None:
                return None
            stamps.append(stamp)

        if not stamps:
            return None
        index = pd.to_datetime(pd.Series(stamps), errors='coerce')
        if index.isna().any():
            return None
        return pd.DatetimeIndex(index)

    def find_issues(self, values: Sequence[float]) -> List[str]:
        """Return every data quality problem found in ``values``."""
        issues = []
        array = np.asarray(values, dtype=float)

        non_finite = int((~np.isfinite(array)).sum())
        if non_finite:
            issues.append(f"Series contains {non_finite} NaN or infinite values")

        finite = array[np.isfinite(array)]
        all_zero = len(array) > 0 and len(finite) == len(array) and bool(np.all(finite == 0))
        if all_zero:
            issues.append("Series is all zero")
        elif len(finite) > 1 and np.all(finite == finite[0]):
            issues.append(f"Series has zero variance (every value is {finite[0]:g})")

        if len(array) < self.config.min_points:
            issues.append(
                f"Insufficient data points: {len(array)} (minimum {self.config.min_points})"
            )

        distinct = len(np.unique(finite))
        if not all_zero and distinct < self.config.min_distinct_values:
            issues.append(
                f"Insufficient variation: {distinct} distinct values "
                f"(minimum {self.config.min_distinct_values})"
            )

        return issues

    def validate_and_preprocess(self, series: SeriesInput) -> pd.Series:
        """
        Validate a raw series and return it as a float series.

        Parameters:
        ----------
        series : pd.Series, pd.DataFrame or iterable
            Numbers, mappings or SeriesPoint records in time order

        Returns:
        -------
        pd.Series
            Values as floats, indexed by timestamp when every point has one

        Raises:
        ------
        DataValidationError
            Aggregating every detected problem
        """
        values, index = self._extract(series)

        issues = self.find_issues(values)
        if issues:
            logger.warning(f"Rejected series of {len(values)} points: {'; '.join(issues)}")
            raise DataValidationError(issues)

        cleaned = pd.Series(values, index=index, dtype=float, name='value')
        cleaned = cleaned.replace([np.inf, -np.inf], np.nan).fillna(0.0)

        logger.debug(f"Validated series of {len(cleaned)} points")
        return cleaned


def compute_data_hash(series: SeriesInput, version: str = "v2",
                      accessor: Optional[ValueAccessor] = None) -> str:
    """
    Fingerprint a series for cache invalidation.

    The hash is ``<version>-<n>-<sha256>`` over the time-ordered points with
    values rounded to three decimals. Series with timestamps are sorted
    first so row order does not matter.
    """
    accessor = accessor or ValueAccessor()

    if isinstance(series, pd.Series):
        ordered = series.sort_index() if isinstance(series.index, pd.DatetimeIndex) else series
        points = [(str(stamp.date()) if isinstance(stamp, pd.Timestamp) else str(stamp),
                   accessor.parse(value)) for stamp, value in ordered.items()]
    else:
        records = series.to_dict('records') if isinstance(series, pd.DataFrame) else list(series)
        index = DataValidator._timestamp_index(records)
        values = [accessor(point) for point in records]
        values = [0.0 if value is None else value for value in values]
        if index is not None:
            pairs = sorted(zip(index, values), key=lambda pair: pair[0])
            points = [(str(stamp.date()), value) for stamp, value in pairs]
        else:
            points = [(str(position), value) for position, value in enumerate(values)]

    if not points:
        return 'empty'

    def _format(value: Optional[float]) -> str:
        if value is None or not math.isfinite(value):
            return 'nan'
        return f"{round(value, 3):.3f}"

    payload = '|'.join(f"{stamp}:{_format(value)}" for stamp, value in points)
    digest = hashlib.sha256(payload.encode('utf-8')).hexdigest()
    return f"{version}-{len(points)}-{digest}"

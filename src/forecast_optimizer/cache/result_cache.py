"""
Optimization result cache and best-method selection.

Entries are keyed by (entity SKU, model id) and hold one slot per tuning
method (ai, grid, manual). A slot is only usable while its data hash matches
the current series and it is younger than the expiry window. Composite
scoring ranks the best result of every (model, method) pair and marks one
winner per entity.
"""

import copy
import logging
import math
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config import CacheConfig, ScoringWeights
from ..schemas import Job, JobStatus

logger = logging.getLogger(__name__)

METHODS = ('ai', 'grid', 'manual')
METHOD_PRIORITY = ('ai', 'grid', 'manual')


@dataclass
class MethodSlot:
    """Best parameters recorded by one tuning method."""

    parameters: Dict[str, Any]
    data_hash: str
    timestamp: datetime
    confidence: Optional[float] = None
    accuracy: Optional[float] = None
    reasoning: Optional[str] = None
    expected_accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass
class CacheEntry:
    slots: Dict[str, MethodSlot] = field(default_factory=dict)
    selected: Optional[str] = None
    user_selected: bool = False

    def slot(self, method: str) -> Optional[MethodSlot]:
        return self.slots.get(method)


@dataclass
class ModelState:
    """Working state of a model as shown to a planner."""

    model_id: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    optimized_parameters: Optional[Dict[str, Any]] = None
    optimization_method: Optional[str] = None
    optimization_confidence: Optional[float] = None
    optimization_reasoning: Optional[str] = None
    expected_accuracy: Optional[float] = None

    def clear_optimization(self) -> None:
        self.optimized_parameters = None
        self.optimization_method = None
        self.optimization_confidence = None
        self.optimization_reasoning = None
        self.expected_accuracy = None

    def apply(self, method: str, slot: MethodSlot) -> None:
        self.optimized_parameters = dict(slot.parameters)
        self.optimization_method = method
        self.optimization_confidence = slot.confidence
        self.optimization_reasoning = slot.reasoning
        self.expected_accuracy = slot.expected_accuracy if slot.expected_accuracy is not None else slot.accuracy

    @property
    def effective_parameters(self) -> Dict[str, Any]:
        return {**self.parameters, **(self.optimized_parameters or {})}


class ResultCache:
    """
    Thread-safe cache of optimization results.

    Every read-modify-write of one (sku, model) entry runs under that
    entry's lock; different keys never contend.
    """

    def __init__(self, config: Optional[CacheConfig] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config or CacheConfig()
        self.clock = clock
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: Tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    @property
    def expiry(self) -> timedelta:
        return timedelta(hours=self.config.expiry_hours)

    def is_valid(self, slot: Optional[MethodSlot], current_hash: str) -> bool:
        """A slot is valid for the current versioned hash and within the expiry window."""
        if slot is None or not slot.data_hash:
            return False
        if not slot.data_hash.startswith(f"{self.config.hash_version}-"):
            return False
        if slot.data_hash != current_hash:
            return False
        return self.clock() - slot.timestamp <= self.expiry

    def get_entry(self, sku: str, model_id: str) -> Optional[CacheEntry]:
        """Snapshot of the raw entry, valid or not."""
        key = (sku, model_id)
        with self._lock_for(key):
            entry = self._entries.get(key)
            return copy.deepcopy(entry) if entry else None

    def _best_method(self, entry: Optional[CacheEntry], current_hash: str) -> str:
        if entry is None:
            return 'manual'
        if entry.user_selected and entry.selected and self.is_valid(entry.slot(entry.selected), current_hash):
            return entry.selected
        for method in METHOD_PRIORITY:
            if self.is_valid(entry.slot(method), current_hash):
                return method
        return 'manual'

    def best_available_method(self, sku: str, model_id: str, current_hash: str) -> str:
        """
        Method whose parameters should be used for the current data.

        A valid explicit user selection wins; otherwise ai, grid and manual
        are tried in that order among slots valid for ``current_hash``.
        """
        key = (sku, model_id)
        with self._lock_for(key):
            return self._best_method(self._entries.get(key), current_hash)

    def get_cached(self, sku: str, model_id: str, current_hash: str,
                   method: Optional[str] = None) -> Optional[MethodSlot]:
        """
        Valid slot for ``method``, or for the best available method.

        Returns None when no usable slot exists for the current data.
        """
        key = (sku, model_id)
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                return None
            method = method or self._best_method(entry, current_hash)
            slot = entry.slot(method)
            if not self.is_valid(slot, current_hash):
                return None
            return copy.deepcopy(slot)

    def record_result(self, sku: str, model_id: str, method: str,
                      parameters: Dict[str, Any], data_hash: str,
                      confidence: Optional[float] = None,
                      accuracy: Optional[float] = None,
                      reasoning: Optional[str] = None,
                      expected_accuracy: Optional[float] = None) -> CacheEntry:
        """Store the result of one method and return a snapshot of the entry."""
        if method not in METHODS:
            raise ValueError(f"Unknown method '{method}', expected one of {METHODS}")

        key = (sku, model_id)
        with self._lock_for(key):
            entry = self._entries.setdefault(key, CacheEntry())
            entry.slots[method] = MethodSlot(
                parameters=dict(parameters),
                data_hash=data_hash,
                timestamp=self.clock(),
                confidence=confidence,
                accuracy=accuracy,
                reasoning=reasoning,
                expected_accuracy=expected_accuracy
            )
            if not entry.user_selected:
                entry.selected = self._best_method(entry, data_hash)

            logger.debug(f"Cached {method} result for {sku}/{model_id} (selected: {entry.selected})")
            return copy.deepcopy(entry)

    def set_selected_method(self, sku: str, model_id: str, method: str,
                            data_hash: Optional[str] = None,
                            model_state: Optional[ModelState] = None,
                            user_selected: bool = True) -> CacheEntry:
        """
        Select the method used for a model.

        Switching to manual stores the model's current parameters in the
        manual slot (when a data hash is given) and clears every optimization
        annotation on ``model_state``. Switching to ai or grid applies that
        slot's parameters to ``model_state``.
        """
        if method not in METHODS:
            raise ValueError(f"Unknown method '{method}', expected one of {METHODS}")

        key = (sku, model_id)
        with self._lock_for(key):
            entry = self._entries.setdefault(key, CacheEntry())

            if method == 'manual':
                if model_state is not None:
                    parameters = model_state.effective_parameters
                elif entry.selected and entry.slot(entry.selected):
                    parameters = entry.slot(entry.selected).parameters
                else:
                    parameters = {}
                if data_hash is not None:
                    entry.slots['manual'] = MethodSlot(
                        parameters=dict(parameters),
                        data_hash=data_hash,
                        timestamp=self.clock()
                    )
                if model_state is not None:
                    model_state.parameters = dict(parameters)
                    model_state.clear_optimization()
            elif model_state is not None:
                slot = entry.slot(method)
                if slot is not None:
                    model_state.apply(method, slot)
                else:
                    logger.warning(f"No {method} result cached for {sku}/{model_id}")

            entry.selected = method
            entry.user_selected = user_selected
            logger.info(f"Selected {method} for {sku}/{model_id}")
            return copy.deepcopy(entry)

    def entities_needing_optimization(self, items: Iterable[Tuple[str, str, str]],
                                      method: str = 'grid') -> List[Tuple[str, str]]:
        """(sku, model_id) pairs without a valid ``method`` slot for their current hash."""
        stale = []
        for sku, model_id, current_hash in items:
            if self.get_cached(sku, model_id, current_hash, method) is None:
                stale.append((sku, model_id))
        return stale

    def invalidate(self, sku: str, model_id: Optional[str] = None) -> int:
        """Drop the entries of an entity, or of one model of it. Returns the count removed."""
        keys = [key for key in list(self._entries)
                if key[0] == sku and (model_id is None or key[1] == model_id)]
        for key in keys:
            with self._lock_for(key):
                self._entries.pop(key, None)
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)


def _metric(value: Any, fallback: float) -> float:
    """Missing or non-finite metrics count as the worst observed value."""
    if value is None:
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def _normalize_record(record: Any) -> Dict[str, Any]:
    data = record.to_dict() if hasattr(record, 'to_dict') else dict(record)
    data.setdefault('model_id', data.get('model_type') or data.get('modelType'))
    return data


def records_from_jobs(jobs: Iterable[Job]) -> List[Dict[str, Any]]:
    """Flatten the successful results of completed jobs into scorable records."""
    records = []
    for job in jobs:
        if job.status != JobStatus.COMPLETED or not isinstance(job.result, Mapping):
            continue
        for result in job.result.get('results', []):
            if not result.get('success', True):
                continue
            records.append({
                **result,
                'sku': job.sku,
                'method': job.method.value,
                'job_id': job.id,
                'batch_id': job.batch_id
            })
    return records


def best_results_per_model(records: Iterable[Any],
                           weights: Optional[ScoringWeights] = None,
                           sku: Optional[str] = None,
                           model_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Best result per (sku, model, method) by composite score.

    Within each group MAPE, RMSE and MAE are normalized against the group
    maximum (at least 1) as ``1 - value / max`` and accuracy as
    ``accuracy / 100``; the composite score is their weighted sum.

    Parameters:
    ----------
    records : iterable
        Result mappings or objects with ``to_dict``; each carries
        ``sku``, ``method`` and ``model_id`` (or ``model_type``)
    weights : ScoringWeights, optional
        Metric weights, defaults to 0.4/0.3/0.2/0.1
    sku, model_id : str, optional
        Filters

    Returns:
    -------
    List[Dict[str, Any]]
        One entry per group with ``sku``, ``model_id``, ``method`` and the
        ``best_result`` including its ``composite_score``
    """
    weights = weights or ScoringWeights()

    groups: Dict[Tuple[Any, Any, Any], List[Dict[str, Any]]] = {}
    for record in records:
        data = _normalize_record(record)
        if sku is not None and data.get('sku') != sku:
            continue
        if model_id is not None and data.get('model_id') != model_id:
            continue
        groups.setdefault((data.get('sku'), data.get('model_id'), data.get('method')), []).append(data)

    best_results = []
    for (group_sku, group_model, group_method), results in groups.items():
        def group_max(name: str) -> float:
            finite = [_metric(r.get(name), 0.0) for r in results]
            return max(finite + [1.0])

        max_mape, max_rmse, max_mae = group_max('mape'), group_max('rmse'), group_max('mae')

        for result in results:
            norm_mape = min(1.0, max(0.0, 1 - _metric(result.get('mape'), max_mape) / max_mape))
            norm_rmse = min(1.0, max(0.0, 1 - _metric(result.get('rmse'), max_rmse) / max_rmse))
            norm_mae = min(1.0, max(0.0, 1 - _metric(result.get('mae'), max_mae) / max_mae))
            norm_accuracy = min(1.0, max(0.0, _metric(result.get('accuracy'), 0.0) / 100))
            result['composite_score'] = (
                weights.mape * norm_mape
                + weights.rmse * norm_rmse
                + weights.mae * norm_mae
                + weights.accuracy * norm_accuracy
            )

        best = max(results, key=lambda r: r['composite_score'])
        best_results.append({
            'sku': group_sku,
            'model_id': group_model,
            'method': group_method,
            'best_result': best
        })

    return best_results


def select_winner(best_results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Mark exactly one (model, method) winner per sku.

    Ranks by composite score, falling back to accuracy for results without
    one. Sets ``is_winner`` on every entry in place and returns the list.
    """
    def rank(entry: Dict[str, Any]) -> float:
        result = entry.get('best_result') or {}
        score = result.get('composite_score')
        if score is None:
            return _metric(result.get('accuracy'), 0.0)
        return float(score)

    winners: Dict[Any, Dict[str, Any]] = {}
    for entry in best_results:
        entry['is_winner'] = False
        current = winners.get(entry.get('sku'))
        if current is None or rank(entry) > rank(current):
            winners[entry.get('sku')] = entry

    for entry in winners.values():
        entry['is_winner'] = True
    return best_results

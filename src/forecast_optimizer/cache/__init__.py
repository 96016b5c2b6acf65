"""
Optimization result caching.
"""

from .result_cache import (
    CacheEntry, MethodSlot, ModelState, ResultCache,
    best_results_per_model, records_from_jobs, select_winner
)

__all__ = [
    'CacheEntry',
    'MethodSlot',
    'ModelState',
    'ResultCache',
    'best_results_per_model',
    'records_from_jobs',
    'select_winner'
]

"""
Model evaluation components.

This module provides the accuracy metrics shared by single-split
evaluation, walk-forward validation and cross-validation.
"""

from .metrics import ForecastMetrics, ValidationMetrics

__all__ = [
    'ForecastMetrics',
    'ValidationMetrics'
]

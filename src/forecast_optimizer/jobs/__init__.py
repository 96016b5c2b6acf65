"""
Optimization jobs: status feeds, polling aggregation and execution.
"""

from .feed import HttpJobStatusFeed, JobStatusFeed, StaticJobStatusFeed, parse_jobs
from .status import JobStatusAggregator, JobSummary
from .worker import InMemoryJobStore, OptimizationWorker

__all__ = [
    'HttpJobStatusFeed',
    'InMemoryJobStore',
    'JobStatusAggregator',
    'JobStatusFeed',
    'JobSummary',
    'OptimizationWorker',
    'StaticJobStatusFeed',
    'parse_jobs'
]

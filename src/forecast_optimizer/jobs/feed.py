"""
Job status feeds.

A feed returns the current snapshot of optimization jobs. The backend
answers either with a flat list of job records or with ``{total, jobs}``;
both shapes are accepted.
"""

import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, Union

import requests
from pydantic import ValidationError

from ..exceptions import JobFeedError
from ..schemas import Job

logger = logging.getLogger(__name__)


def parse_jobs(payload: Any) -> List[Job]:
    """Parse a feed payload into jobs, skipping malformed records."""
    if isinstance(payload, dict) and 'jobs' in payload:
        records = payload['jobs']
        if not isinstance(records, list):
            logger.warning(f"Job feed 'jobs' field is not a list: {type(records).__name__}")
            return []
    elif isinstance(payload, list):
        records = payload
    else:
        logger.warning(f"Job feed returned neither a list nor a summary object: {type(payload).__name__}")
        return []

    jobs = []
    for record in records:
        if isinstance(record, Job):
            jobs.append(record)
            continue
        try:
            jobs.append(Job.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping malformed job record {record!r}: {e.error_count()} errors")
    return jobs


class JobStatusFeed(Protocol):
    """Source of job snapshots."""

    def fetch(self) -> List[Job]:
        """Return the current jobs or raise JobFeedError."""
        ...


class HttpJobStatusFeed:
    """Reads job snapshots from the backend status endpoint."""

    def __init__(self, url: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.setup_session()

    def setup_session(self):
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "forecast-param-optimizer",
        })

    def fetch(self) -> List[Job]:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise JobFeedError(f"Failed to fetch job status from {self.url}: {e}") from e
        except ValueError as e:
            raise JobFeedError(f"Job status response from {self.url} is not JSON: {e}") from e

        return parse_jobs(payload)

    def close(self) -> None:
        self.session.close()


class StaticJobStatusFeed:
    """
    In-process feed returning queued snapshots.

    Each fetch returns the next snapshot; the last one repeats. A snapshot
    that is an exception instance is raised instead. A callable source is
    called on every fetch.
    """

    def __init__(self, snapshots: Union[Sequence[Any], Callable[[], Any]] = ()):
        self._source = snapshots if callable(snapshots) else None
        self._snapshots = [] if callable(snapshots) else list(snapshots)
        self._position = 0

    def push(self, snapshot: Any) -> None:
        self._snapshots.append(snapshot)

    def fetch(self) -> List[Job]:
        if self._source is not None:
            snapshot = self._source()
        elif not self._snapshots:
            snapshot = []
        else:
            snapshot = self._snapshots[min(self._position, len(self._snapshots) - 1)]
            self._position += 1

        if isinstance(snapshot, Exception):
            if isinstance(snapshot, JobFeedError):
                raise snapshot
            raise JobFeedError(str(snapshot)) from snapshot
        return parse_jobs(snapshot)

"""
In-memory table of scan jobs.

Readers always get deep-copied snapshots. The orchestrator that owns a job
writes through ``mutate``, which holds the store lock for the duration of the
update so a reader never sees a half-applied change.
"""

import threading
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional

from .errors import JobNotFoundError
from .models import ScanJob

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600.0
DEFAULT_MAX_JOBS = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """Thread-safe job id -> ScanJob map with a retention policy for finished jobs."""

    def __init__(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS,
                 max_jobs: int = DEFAULT_MAX_JOBS,
                 now: Optional[Callable[[], datetime]] = None):
        self.retention_seconds = retention_seconds
        self.max_jobs = max_jobs
        self._now = now or _utcnow
        self._jobs: Dict[str, ScanJob] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job: ScanJob) -> ScanJob:
        """Register a new job and return a snapshot of it."""
        with self._lock:
            self.evict_expired()
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = job
            return job.snapshot()

    def get(self, job_id: str) -> Optional[ScanJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    @contextmanager
    def mutate(self, job_id: str) -> Iterator[ScanJob]:
        """Yield the live job for in-place updates.

        Raises:
            JobNotFoundError: If the job is not in the store
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            yield job

    def find_active(self, repository_id: str) -> Optional[ScanJob]:
        """The pending or processing job for a repository, if any."""
        with self._lock:
            for job in self._jobs.values():
                if job.repository_id == repository_id and not job.status.is_terminal:
                    return job.snapshot()
            return None

    def latest_for_repository(self, repository_id: str) -> Optional[ScanJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.repository_id == repository_id]
            if not jobs:
                return None
            return max(jobs, key=lambda j: j.started_at).snapshot()

    def list_jobs(self) -> List[ScanJob]:
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs past retention, then the oldest beyond ``max_jobs``.

        Jobs that are still pending or processing are never evicted.

        Returns:
            Number of jobs removed
        """
        now = now or self._now()
        cutoff = now - timedelta(seconds=self.retention_seconds)

        with self._lock:
            finished = [j for j in self._jobs.values() if j.status.is_terminal]
            expired = {j.id for j in finished if (j.finished_at or j.started_at) < cutoff}

            remaining = sorted(
                (j for j in finished if j.id not in expired),
                key=lambda j: j.finished_at or j.started_at,
            )
            overflow = len(remaining) - self.max_jobs
            if overflow > 0:
                expired.update(j.id for j in remaining[:overflow])

            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.debug(f"Evicted {len(expired)} finished scan jobs")
        return len(expired)

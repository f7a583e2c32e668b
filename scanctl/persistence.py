"""
Job snapshot persistence.
"""

import re
import json
import threading
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .collaborators import JobPersistence
from .errors import PersistenceError
from .models import ScanJob

logger = logging.getLogger(__name__)

JOB_ID_RE = re.compile(r'^[A-Za-z0-9_-]+$')


class InMemoryJobPersistence(JobPersistence):
    """Keeps the latest snapshot of each job in a dict."""

    def __init__(self):
        self._snapshots: Dict[str, ScanJob] = {}
        self._lock = threading.Lock()

    def save(self, job: ScanJob) -> None:
        with self._lock:
            self._snapshots[job.id] = job.snapshot()

    def load(self, job_id: str) -> Optional[ScanJob]:
        with self._lock:
            job = self._snapshots.get(job_id)
            return job.snapshot() if job else None


class JsonJobPersistence(JobPersistence):
    """One JSON file per job in a directory, written atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _job_file(self, job_id: str) -> Path:
        if not JOB_ID_RE.match(job_id):
            raise PersistenceError(f"Invalid job id: {job_id!r}")
        return self.directory / f"{job_id}.json"

    def save(self, job: ScanJob) -> None:
        """Write the job snapshot.

        Raises:
            PersistenceError: If the snapshot cannot be written
        """
        job_file = self._job_file(job.id)

        # Write to temporary file first, then rename for atomic operation
        temp_file = job_file.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                json.dump(job.to_dict(), f, indent=2, default=str)
            temp_file.replace(job_file)
        except Exception as e:
            if temp_file.exists():
                temp_file.unlink()
            raise PersistenceError(f"Failed to save job {job.id}: {e}") from e

    def load(self, job_id: str) -> Optional[ScanJob]:
        """Read a job snapshot, or None if it was never saved.

        Raises:
            PersistenceError: If the file exists but cannot be parsed
        """
        job_file = self._job_file(job_id)
        if not job_file.exists():
            return None

        try:
            with open(job_file, 'r') as f:
                return ScanJob.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceError(f"Failed to load job {job_id}: {e}") from e

    def list_job_ids(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def delete(self, job_id: str) -> bool:
        job_file = self._job_file(job_id)
        if job_file.exists():
            job_file.unlink()
            return True
        return False

"""
Scan job orchestration.

A job moves pending -> processing -> completed|failed and never leaves a
terminal state. Within a job files are analyzed one at a time, in fixed-size
batches separated by a pacing delay. Several jobs may run at once as separate
asyncio tasks; they share only the rate limiter inside the analyzer.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import aggregator
from .analyzer import FileAnalyzer
from .collaborators import JobPersistence, Notifier
from .config import BatchConfig
from .discovery import FileDiscoverer
from .errors import JobNotFoundError, QuotaExceededError, ScanAlreadyRunningError
from .job_store import JobStore
from .logging_config import get_logger, get_scan_logger
from .models import AnalysisResult, FailureKind, FileTask, JobStatus, ScanJob
from .notifications import notifications_for_job

logger = logging.getLogger(__name__)

SCAN_CANCELLED = "Scan cancelled"
DEFAULT_CHECKPOINT_INTERVAL = 10


def progress_percent(processed: int, total: int) -> int:
    """Whole percentage of files processed, 100 for an empty job."""
    if total <= 0:
        return 100
    return min(100, processed * 100 // total)


def make_batches(tasks: List[FileTask], batch_size: int) -> List[List[FileTask]]:
    size = max(1, batch_size)
    return [tasks[i:i + size] for i in range(0, len(tasks), size)]


class ScanOrchestrator:
    """Owns scan jobs from creation to their terminal state."""

    def __init__(self, discoverer: FileDiscoverer, analyzer: FileAnalyzer,
                 job_store: JobStore,
                 persistence: Optional[JobPersistence] = None,
                 notifiers: Optional[List[Notifier]] = None,
                 batching: Optional[BatchConfig] = None,
                 checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
                 coalesce_duplicates: bool = False,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Args:
            discoverer: Produces the file list for a repository
            analyzer: Analyzes one file at a time
            job_store: Shared in-memory job table
            persistence: Receives snapshots at checkpoints and on completion
            notifiers: Invoked once per job after it reaches a terminal state
            batching: Batch size and inter-batch delay
            checkpoint_interval: Persist every N processed files (0 disables)
            coalesce_duplicates: Return the running job instead of rejecting
                a second scan of the same repository
            sleep: Coroutine function used for the inter-batch delay
        """
        self.discoverer = discoverer
        self.analyzer = analyzer
        self.job_store = job_store
        self.persistence = persistence
        self.notifiers = list(notifiers or [])
        self.batching = batching or BatchConfig()
        self.checkpoint_interval = checkpoint_interval
        self.coalesce_duplicates = coalesce_duplicates
        self._sleep = sleep or asyncio.sleep
        self._tasks: Dict[str, asyncio.Task] = {}

        self.log = get_logger("orchestrator")
        self.scan_logger = get_scan_logger()

    # ----- public interface -------------------------------------------------

    async def start_scan(self, repository_id: str, user_id: Optional[str] = None,
                         root: Optional[str] = None) -> str:
        """Create a job for the repository and start processing it in the background.

        Returns:
            The new job id, or the running job's id when duplicates are coalesced

        Raises:
            ScanAlreadyRunningError: If the repository already has an active job
        """
        active = self.job_store.find_active(repository_id)
        if active is not None:
            if self.coalesce_duplicates:
                self.log.info("Coalescing duplicate scan request",
                              repository_id=repository_id, job_id=active.id)
                return active.id
            raise ScanAlreadyRunningError(repository_id, active.id)

        job = ScanJob(
            id=uuid.uuid4().hex,
            repository_id=repository_id,
            root=root or repository_id,
            user_id=user_id,
        )
        self.job_store.create(job)
        self.scan_logger.info(f"Scan queued for {repository_id}",
                              job_id=job.id, repository_id=repository_id, user_id=user_id)

        task = asyncio.create_task(self._run_job(job.id), name=f"scan-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return job.id

    def get_status(self, job_id: str) -> Optional[ScanJob]:
        """Best available snapshot of a job. Never raises; None if the job is unknown."""
        try:
            job = self.job_store.get(job_id)
            if job is not None:
                return job
            if self.persistence is not None:
                return self.persistence.load(job_id)
        except Exception as e:
            logger.error(f"Failed to read status of job {job_id}: {e}")
        return None

    def latest_job(self, repository_id: str) -> Optional[ScanJob]:
        return self.job_store.latest_for_repository(repository_id)

    def cancel(self, job_id: str) -> bool:
        """Ask a running job to stop at the next batch boundary.

        Returns:
            False if the job is unknown or already finished
        """
        try:
            with self.job_store.mutate(job_id) as job:
                if job.status.is_terminal:
                    return False
                job.cancel_requested = True
        except JobNotFoundError:
            return False
        self.log.info("Scan cancellation requested", job_id=job_id)
        return True

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ScanJob]:
        """Wait for a job to finish and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return self.get_status(job_id)

    async def run_scan(self, repository_id: str, user_id: Optional[str] = None,
                       root: Optional[str] = None) -> Optional[ScanJob]:
        """Start a scan and wait for it to finish."""
        job_id = await self.start_scan(repository_id, user_id=user_id, root=root)
        return await self.wait(job_id)

    def active_job_ids(self) -> List[str]:
        return list(self._tasks)

    async def shutdown(self) -> None:
        """Wait for every running job to reach a terminal state."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ----- job processing ---------------------------------------------------

    async def _run_job(self, job_id: str) -> None:
        try:
            await self._process(job_id)
        except Exception as e:
            logger.error(f"Scan job {job_id} failed: {e}")
            logger.debug("Scan job failure details", exc_info=True)
            self._finalize(job_id, JobStatus.FAILED, str(e) or type(e).__name__)
        await self._after_completion(job_id)

    async def _process(self, job_id: str) -> None:
        with self.job_store.mutate(job_id) as job:
            job.status = JobStatus.PROCESSING
            root = job.root
            repository_id = job.repository_id

        self.scan_logger.info(f"Scan started for {repository_id}", job_id=job_id, root=root)

        report = await self.discoverer.scan_tree(root)
        tasks = report.tasks
        with self.job_store.mutate(job_id) as job:
            job.total_files = len(tasks)

        batches = make_batches(tasks, self.batching.batch_size)
        delay = self.batching.batch_delay_ms / 1000.0
        self.log.info("Processing files",
                      job_id=job_id,
                      total_files=len(tasks),
                      batches=len(batches),
                      batch_size=self.batching.batch_size)

        for index, batch in enumerate(batches):
            if index > 0:
                self.log.verbose("Waiting between batches", job_id=job_id, delay_seconds=delay)
                await self._sleep(delay)

            if self._cancel_requested(job_id):
                self._finalize(job_id, JobStatus.FAILED, SCAN_CANCELLED)
                return

            for task in batch:
                result = await self.analyzer.analyze(task)
                processed = self._record_result(job_id, result)

                if result.failure_kind == FailureKind.QUOTA_EXHAUSTED:
                    raise QuotaExceededError(
                        f"AI service quota exhausted while analyzing {task.path}: {result.error}"
                    )

                if self.checkpoint_interval and processed % self.checkpoint_interval == 0:
                    await self._persist(job_id)

            self.log.verbose("Batch finished", job_id=job_id, batch=index + 1, batches=len(batches))

        self._finalize(job_id, JobStatus.COMPLETED)

    def _cancel_requested(self, job_id: str) -> bool:
        with self.job_store.mutate(job_id) as job:
            return job.cancel_requested

    def _record_result(self, job_id: str, result: AnalysisResult) -> int:
        with self.job_store.mutate(job_id) as job:
            job.results.append(result)
            job.processed_files += 1
            if not result.success:
                job.failed_files += 1
            job.issue_counts.add_issues(result.issues)
            job.progress_percent = progress_percent(job.processed_files, job.total_files)
            return job.processed_files

    def _finalize(self, job_id: str, status: JobStatus, error: Optional[str] = None) -> None:
        with self.job_store.mutate(job_id) as job:
            if job.status.is_terminal:
                return
            job.summary = aggregator.summarize(job.results)
            job.status = status
            job.error = error
            job.finished_at = datetime.now(timezone.utc)
            if status == JobStatus.COMPLETED:
                job.progress_percent = 100

        if status == JobStatus.COMPLETED:
            self.scan_logger.info("Scan completed", job_id=job_id,
                                  risk_score=job.summary.risk_score,
                                  issues=job.issue_counts.to_dict())
        else:
            self.scan_logger.error("Scan failed", job_id=job_id, error=error)

    async def _persist(self, job_id: str) -> None:
        if self.persistence is None:
            return
        snapshot = self.job_store.get(job_id)
        if snapshot is None:
            return
        try:
            await asyncio.to_thread(self.persistence.save, snapshot)
        except Exception as e:
            # The in-memory job stays authoritative
            logger.error(f"Failed to persist job {job_id}: {e}")
            self.log.error("Job persistence failed", job_id=job_id, error=str(e))

    async def _after_completion(self, job_id: str) -> None:
        """Persist the final snapshot and hand it to every notifier."""
        await self._persist(job_id)

        snapshot = self.job_store.get(job_id)
        if snapshot is None or not self.notifiers:
            return

        for notification in notifications_for_job(snapshot):
            for notifier in self.notifiers:
                try:
                    await notifier.notify(snapshot.user_id, notification)
                except Exception as e:
                    logger.warning(f"Notifier {type(notifier).__name__} failed for job {job_id}: {e}")
                    self.log.warning("Notification delivery failed",
                                     job_id=job_id,
                                     notifier=type(notifier).__name__,
                                     notification_type=notification.type,
                                     error=str(e))

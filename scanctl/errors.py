"""
Exception hierarchy for scanctl.

Per-file problems are reported on the AnalysisResult and never raised out of
the analyzer; the exceptions below are for remote signalling, job-fatal
conditions and API misuse.
"""

from typing import Optional


class ScanError(Exception):
    """Base exception for scan pipeline errors."""
    pass


class QuotaExceededError(ScanError):
    """Raised when the AI service reports quota exhaustion (HTTP 429)."""

    def __init__(self, message: str = "AI service quota exceeded",
                 retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitExhaustedError(QuotaExceededError):
    """Raised when the local rate limiter refuses to grant a token."""
    pass


class AnalysisServiceError(ScanError):
    """Raised when the AI service fails for a reason other than quota."""
    pass


class ContentFetchError(ScanError):
    """Raised when file content cannot be retrieved."""
    pass


class DiscoveryError(ScanError):
    """Raised when the repository tree cannot be listed at all."""
    pass


class RepositoryNotFoundError(DiscoveryError):
    """Raised when the repository being scanned does not exist."""
    pass


class ScanAlreadyRunningError(ScanError):
    """Raised when a scan is requested for a repository that is already being scanned."""

    def __init__(self, repository_id: str, job_id: str):
        super().__init__(f"Repository {repository_id} already has an active scan: {job_id}")
        self.repository_id = repository_id
        self.job_id = job_id


class JobNotFoundError(ScanError):
    """Raised when a job id is not known to the job store."""
    pass


class PersistenceError(ScanError):
    """Raised when a job snapshot cannot be saved or loaded."""
    pass


class ConfigError(ScanError):
    """Raised when the configuration file is unreadable."""
    pass


# Substrings that mark an error message as a quota/overload signal
QUOTA_ERROR_MARKERS = (
    "429",
    "rate_limit",
    "rate limit",
    "too many requests",
    "resource_exhausted",
    "quota",
)


def is_quota_error(error: BaseException) -> bool:
    """Check whether an exception signals quota exhaustion on the remote side."""
    if isinstance(error, QuotaExceededError):
        return True
    error_str = str(error).lower()
    return any(marker in error_str for marker in QUOTA_ERROR_MARKERS)

"""
Interfaces the scan pipeline consumes from the outside world.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import ScanJob


ENTRY_FILE = "file"
ENTRY_DIR = "dir"


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a directory listing.

    ``path`` is relative to the repository root and uses forward slashes.
    ``content_ref`` is an opaque handle understood by the same ContentStore.
    """
    path: str
    kind: str
    size: int = 0
    content_ref: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.kind == ENTRY_DIR


class NotificationType:
    SCAN_COMPLETE = "scan_complete"
    SECURITY_ALERT = "security_alert"
    ERROR = "error"


@dataclass
class Notification:
    """Payload handed to notifiers once a job reaches a terminal state."""
    type: str
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    priority: str = "medium"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'metadata': dict(self.metadata),
            'priority': self.priority,
        }


class ContentStore(ABC):
    """Read access to a repository's tree and file contents."""

    @abstractmethod
    async def list_directory(self, root: str, path: str = "") -> List[TreeEntry]:
        """List the direct children of ``path`` inside repository ``root``.

        Raises:
            RepositoryNotFoundError: If ``root`` does not exist
            DiscoveryError: If the directory cannot be listed
        """
        pass

    @abstractmethod
    async def get_content(self, content_ref: str) -> bytes:
        """Fetch the raw bytes behind a ``TreeEntry.content_ref``.

        Raises:
            ContentFetchError: If the content cannot be retrieved
        """
        pass


class AnalysisService(ABC):
    """The remote AI model."""

    @abstractmethod
    async def submit(self, prompt: str) -> str:
        """Send a prompt and return the model's text response.

        Raises:
            QuotaExceededError: When the service reports quota exhaustion
            AnalysisServiceError: For any other service failure
        """
        pass


class JobPersistence(ABC):
    """Storage for job snapshots beyond the in-memory job store."""

    @abstractmethod
    def save(self, job: ScanJob) -> None:
        pass

    @abstractmethod
    def load(self, job_id: str) -> Optional[ScanJob]:
        pass


class Notifier(ABC):
    """Best-effort delivery of job outcome notifications."""

    @abstractmethod
    async def notify(self, user_id: Optional[str], notification: Notification) -> None:
        pass

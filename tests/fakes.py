"""
In-memory collaborators and a fake clock shared by the test modules.
"""

import asyncio
import json
from typing import Callable, Dict, Iterable, List, Optional

from scanctl.collaborators import (
    ENTRY_DIR, ENTRY_FILE, AnalysisService, ContentStore, Notification, Notifier, TreeEntry
)
from scanctl.errors import ContentFetchError, DiscoveryError, RepositoryNotFoundError


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)


class FakeContentStore(ContentStore):
    """Serves a dict of ``path -> bytes`` as a repository tree."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None,
                 failing_dirs: Iterable[str] = (),
                 fetch_errors: Iterable[str] = (),
                 missing: bool = False):
        self.files = dict(files or {})
        self.failing_dirs = set(failing_dirs)
        self.fetch_errors = set(fetch_errors)
        self.missing = missing
        self.listed: List[str] = []
        self.fetched: List[str] = []

    async def list_directory(self, root: str, path: str = "") -> List[TreeEntry]:
        self.listed.append(path)
        if self.missing:
            raise RepositoryNotFoundError(f"Repository {root} not found")
        if path in self.failing_dirs:
            raise DiscoveryError(f"cannot list {path or 'root'}")

        prefix = f"{path}/" if path else ""
        entries: Dict[str, TreeEntry] = {}
        for file_path, content in self.files.items():
            if not file_path.startswith(prefix):
                continue
            head, sep, _ = file_path[len(prefix):].partition("/")
            if sep:
                child = prefix + head
                entries[child] = TreeEntry(path=child, kind=ENTRY_DIR)
            else:
                entries[file_path] = TreeEntry(path=file_path, kind=ENTRY_FILE,
                                               size=len(content), content_ref=file_path)
        # Deliberately unsorted so ordering is the discoverer's job
        return list(reversed(list(entries.values())))

    async def get_content(self, content_ref: str) -> bytes:
        self.fetched.append(content_ref)
        if content_ref in self.fetch_errors:
            raise ContentFetchError(f"cannot fetch {content_ref}")
        return self.files[content_ref]


class FakeAnalysisService(AnalysisService):
    """Returns a canned response, raises a canned error, or delegates to ``responder``."""

    def __init__(self, response: Optional[str] = None, error: Optional[Exception] = None,
                 responder: Optional[Callable[[str], str]] = None):
        self.response = response if response is not None else analysis_response()
        self.error = error
        self.responder = responder
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def submit(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.responder is not None:
            return self.responder(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingNotifier(Notifier):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.received: List[tuple] = []

    async def notify(self, user_id: Optional[str], notification: Notification) -> None:
        self.received.append((user_id, notification))
        if self.error is not None:
            raise self.error


def analysis_response(severities: Iterable[str] = (), risk_score: int = 20,
                      best_practices: Iterable[str] = ("Validate all user input",),
                      complexity: str = "low complexity",
                      maintainability: str = "good maintainability") -> str:
    """JSON text shaped like the model's answer."""
    return json.dumps({
        "summary": {"riskScore": risk_score, "message": "summary"},
        "issues": [
            {
                "title": f"Issue {i}",
                "severity": severity,
                "description": "description",
                "line": i + 1,
                "recommendation": "fix it",
            }
            for i, severity in enumerate(severities)
        ],
        "metrics": {"complexity": complexity, "maintainability": maintainability},
        "bestPractices": list(best_practices),
    })

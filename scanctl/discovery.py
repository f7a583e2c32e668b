"""
Repository traversal producing the list of files to analyze.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pathspec

from .collaborators import ContentStore, TreeEntry
from .config import DEFAULT_SKIP_DIRECTORIES
from .errors import DiscoveryError, RepositoryNotFoundError
from .logging_config import get_logger
from .models import FileTask

logger = logging.getLogger(__name__)

# Files that can never be meaningfully analyzed as source code
BINARY_FILE_PATTERNS = [
    # Images
    '*.png', '*.jpg', '*.jpeg', '*.gif', '*.bmp', '*.ico', '*.icns', '*.tiff', '*.tif',
    '*.webp', '*.psd', '*.heic', '*.avif',
    # Audio / video
    '*.mp3', '*.wav', '*.flac', '*.ogg', '*.m4a', '*.aac',
    '*.mp4', '*.avi', '*.mov', '*.mkv', '*.webm', '*.wmv',
    # Archives
    '*.zip', '*.tar', '*.gz', '*.tgz', '*.bz2', '*.xz', '*.7z', '*.rar', '*.jar', '*.war',
    # Fonts
    '*.ttf', '*.otf', '*.woff', '*.woff2', '*.eot',
    # Documents
    '*.pdf', '*.doc', '*.docx', '*.xls', '*.xlsx', '*.ppt', '*.pptx',
    # Compiled artifacts
    '*.pyc', '*.pyo', '*.class', '*.o', '*.obj', '*.so', '*.dylib', '*.dll', '*.exe',
    '*.a', '*.lib', '*.wasm', '*.bin',
    # Data blobs
    '*.db', '*.sqlite', '*.sqlite3', '*.pkl', '*.npy',
    # Minified bundles and maps
    '*.min.js', '*.min.css', '*.map',
]


@dataclass
class DiscoveryReport:
    """Everything discovery found, including what it left out and why."""
    root: str
    tasks: List[FileTask] = field(default_factory=list)
    skipped_directories: List[str] = field(default_factory=list)
    skipped_files: Dict[str, str] = field(default_factory=dict)
    failed_subtrees: Dict[str, str] = field(default_factory=dict)

    @property
    def total_files(self) -> int:
        return len(self.tasks)


class FileDiscoverer:
    """Depth-first walk over a ContentStore.

    Content is never fetched here. Given the same tree the output order is
    always the same: entries are visited sorted by path within each directory.
    """

    def __init__(self, content_store: ContentStore,
                 skip_directories: Optional[List[str]] = None,
                 ignore_patterns: Optional[List[str]] = None,
                 max_listed_size: Optional[int] = None):
        """
        Args:
            content_store: Source of directory listings
            skip_directories: Directory path tokens to skip (substring match)
            ignore_patterns: Extra gitwildmatch patterns for files to leave out
            max_listed_size: Leave out files whose listed size exceeds this
        """
        self.content_store = content_store
        self.skip_directories = list(skip_directories if skip_directories is not None
                                     else DEFAULT_SKIP_DIRECTORIES)
        self.ignore_spec = pathspec.PathSpec.from_lines(
            'gitwildmatch', BINARY_FILE_PATTERNS + list(ignore_patterns or [])
        )
        self.max_listed_size = max_listed_size
        self.log = get_logger("discovery")

    def is_skipped_directory(self, path: str) -> bool:
        return any(token in path for token in self.skip_directories)

    def file_skip_reason(self, entry: TreeEntry) -> Optional[str]:
        """Return why a file is left out, or None if it becomes a task."""
        if self.ignore_spec.match_file(entry.path):
            return "binary"
        if self.max_listed_size is not None and entry.size > self.max_listed_size:
            return "too_large"
        return None

    async def discover(self, root: str) -> List[FileTask]:
        """Flat, order-stable list of files to analyze under ``root``.

        Raises:
            RepositoryNotFoundError: If the repository does not exist
            DiscoveryError: If the repository root cannot be listed
        """
        report = await self.scan_tree(root)
        return report.tasks

    async def scan_tree(self, root: str) -> DiscoveryReport:
        """Same as discover() but keeps track of everything that was skipped."""
        report = DiscoveryReport(root=root)
        await self._walk(root, "", report)

        self.log.info("Discovery finished",
                      root=root,
                      files=len(report.tasks),
                      skipped_directories=len(report.skipped_directories),
                      skipped_files=len(report.skipped_files),
                      failed_subtrees=len(report.failed_subtrees))
        return report

    async def _walk(self, root: str, path: str, report: DiscoveryReport) -> None:
        try:
            entries = await self.content_store.list_directory(root, path)
        except RepositoryNotFoundError:
            raise
        except Exception as e:
            if not path:
                raise DiscoveryError(f"Failed to list repository {root}: {e}") from e
            # A broken subtree must not cost us its siblings
            logger.warning(f"Failed to list directory {path}: {e}")
            self.log.warning("Subtree listing failed", root=root, path=path, error=str(e))
            report.failed_subtrees[path] = str(e)
            return

        for entry in sorted(entries, key=lambda e: e.path):
            if entry.is_dir:
                if self.is_skipped_directory(entry.path):
                    report.skipped_directories.append(entry.path)
                    continue
                await self._walk(root, entry.path, report)
                continue

            reason = self.file_skip_reason(entry)
            if reason:
                report.skipped_files[entry.path] = reason
                continue

            report.tasks.append(FileTask(
                path=entry.path,
                size_bytes=entry.size,
                content_ref=entry.content_ref or entry.path,
            ))

"""
Content store backed by a directory on the local filesystem.
"""

import asyncio
import logging
from pathlib import Path
from typing import List

from ..collaborators import ENTRY_DIR, ENTRY_FILE, ContentStore, TreeEntry
from ..errors import ContentFetchError, DiscoveryError, RepositoryNotFoundError

logger = logging.getLogger(__name__)


class LocalContentStore(ContentStore):
    """Serves a checked-out repository. ``root`` is the repository directory.

    Symlinks are not followed, so a link cycle cannot trap discovery.
    """

    async def list_directory(self, root: str, path: str = "") -> List[TreeEntry]:
        return await asyncio.to_thread(self._list_directory, root, path)

    def _list_directory(self, root: str, path: str) -> List[TreeEntry]:
        base = Path(root).resolve()
        if not base.is_dir():
            raise RepositoryNotFoundError(f"Repository directory not found: {root}")

        target = base / path if path else base
        try:
            children = list(target.iterdir())
        except OSError as e:
            raise DiscoveryError(f"Cannot list {target}: {e}") from e

        entries = []
        for child in children:
            if child.is_symlink():
                continue
            rel_path = child.relative_to(base).as_posix()
            if child.is_dir():
                entries.append(TreeEntry(path=rel_path, kind=ENTRY_DIR))
            elif child.is_file():
                try:
                    size = child.stat().st_size
                except OSError as e:
                    logger.warning(f"Cannot stat {child}: {e}")
                    continue
                entries.append(TreeEntry(path=rel_path, kind=ENTRY_FILE, size=size,
                                         content_ref=str(child)))
        return entries

    async def get_content(self, content_ref: str) -> bytes:
        try:
            return await asyncio.to_thread(Path(content_ref).read_bytes)
        except OSError as e:
            raise ContentFetchError(f"Cannot read {content_ref}: {e}") from e

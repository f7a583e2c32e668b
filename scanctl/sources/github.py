"""
Content store backed by the GitHub contents REST API.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from ..collaborators import ENTRY_DIR, ENTRY_FILE, ContentStore, TreeEntry
from ..errors import ContentFetchError, DiscoveryError, RepositoryNotFoundError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30.0


class GitHubContentStore(ContentStore):
    """Lists and fetches files of ``owner/repo`` at a given branch.

    Directory entries other than files and directories (submodules, symlinks)
    are ignored.
    """

    def __init__(self, token: Optional[str] = None, branch: str = "main",
                 client: Optional[httpx.AsyncClient] = None,
                 api_url: str = GITHUB_API_URL,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.branch = branch
        self.api_url = api_url.rstrip('/')
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.headers: Dict[str, str] = {"Accept": "application/vnd.github.v3+json"}
        if token:
            self.headers["Authorization"] = f"token {token}"

    def contents_url(self, root: str, path: str = "") -> str:
        url = f"{self.api_url}/repos/{root}/contents"
        if path:
            url += "/" + quote(path)
        return url

    async def list_directory(self, root: str, path: str = "") -> List[TreeEntry]:
        url = self.contents_url(root, path)
        try:
            response = await self._client.get(url, headers=self.headers, params={"ref": self.branch})
        except httpx.HTTPError as e:
            raise DiscoveryError(f"GitHub request failed for {root}/{path}: {e}") from e

        if response.status_code == 404 and not path:
            raise RepositoryNotFoundError(f"Repository {root} (branch {self.branch}) not found")
        if response.status_code != 200:
            raise DiscoveryError(
                f"GitHub API error {response.status_code} listing {root}/{path}: {response.reason_phrase}"
            )

        data = response.json()
        items = data if isinstance(data, list) else [data]

        entries = []
        for item in items:
            item_type = item.get("type")
            if item_type == "dir":
                entries.append(TreeEntry(path=item["path"], kind=ENTRY_DIR))
            elif item_type == "file":
                entries.append(TreeEntry(
                    path=item["path"],
                    kind=ENTRY_FILE,
                    size=item.get("size") or 0,
                    content_ref=item.get("download_url") or self.contents_url(root, item["path"]),
                ))
        return entries

    async def get_content(self, content_ref: str) -> bytes:
        headers = dict(self.headers, Accept="application/vnd.github.raw")
        try:
            response = await self._client.get(content_ref, headers=headers,
                                              params={"ref": self.branch},
                                              follow_redirects=True)
        except httpx.HTTPError as e:
            raise ContentFetchError(f"Failed to download {content_ref}: {e}") from e

        if response.status_code != 200:
            raise ContentFetchError(f"GitHub returned {response.status_code} for {content_ref}")
        return response.content

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

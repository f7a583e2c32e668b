#!/usr/bin/env python3
"""
Tests for FileDiscoverer.
"""

import pytest

from scanctl.discovery import FileDiscoverer
from scanctl.errors import DiscoveryError, RepositoryNotFoundError
from scanctl.sources.local import LocalContentStore

from fakes import FakeContentStore


REPO_FILES = {
    "README.md": b"# readme",
    "src/app.py": b"print('app')",
    "src/util/helpers.js": b"export const x = 1;",
    "src/logo.png": b"\x89PNG",
    "lib/core.go": b"package core",
    "node_modules/left-pad/index.js": b"module.exports = 1;",
    "dist/bundle.js": b"var a;",
    "packages/build/out.js": b"var b;",
}


class TestFileDiscoverer:
    """Traversal, filtering and ordering."""

    @pytest.mark.asyncio
    async def test_discovers_files_depth_first_in_sorted_order(self):
        discoverer = FileDiscoverer(FakeContentStore(REPO_FILES))

        tasks = await discoverer.discover("repo")

        assert [t.path for t in tasks] == [
            "README.md",
            "lib/core.go",
            "src/app.py",
            "src/util/helpers.js",
        ]

    @pytest.mark.asyncio
    async def test_skip_tokens_match_anywhere_in_directory_path(self):
        discoverer = FileDiscoverer(FakeContentStore(REPO_FILES))

        report = await discoverer.scan_tree("repo")

        assert "node_modules" in report.skipped_directories
        assert "dist" in report.skipped_directories
        assert "packages/build" in report.skipped_directories
        assert not any("node_modules" in t.path for t in report.tasks)

    @pytest.mark.asyncio
    async def test_skipped_directories_are_never_listed(self):
        store = FakeContentStore(REPO_FILES)

        await FileDiscoverer(store).discover("repo")

        assert "node_modules" not in store.listed
        assert "node_modules/left-pad" not in store.listed

    @pytest.mark.asyncio
    async def test_binary_files_are_reported_not_queued(self):
        report = await FileDiscoverer(FakeContentStore(REPO_FILES)).scan_tree("repo")

        assert report.skipped_files == {"src/logo.png": "binary"}

    @pytest.mark.asyncio
    async def test_no_content_is_fetched(self):
        store = FakeContentStore(REPO_FILES)

        await FileDiscoverer(store).discover("repo")

        assert store.fetched == []

    @pytest.mark.asyncio
    async def test_task_carries_size_and_content_ref(self):
        tasks = await FileDiscoverer(FakeContentStore({"a.py": b"12345"})).discover("repo")

        assert tasks[0].size_bytes == 5
        assert tasks[0].content_ref == "a.py"

    @pytest.mark.asyncio
    async def test_listed_size_filter_is_off_by_default(self):
        files = {"big.py": b"x" * 200_000}

        assert len(await FileDiscoverer(FakeContentStore(files)).discover("repo")) == 1

        report = await FileDiscoverer(FakeContentStore(files), max_listed_size=100_000).scan_tree("repo")
        assert report.tasks == []
        assert report.skipped_files == {"big.py": "too_large"}

    @pytest.mark.asyncio
    async def test_custom_skip_directories(self):
        discoverer = FileDiscoverer(FakeContentStore(REPO_FILES), skip_directories=["src"])

        paths = [t.path for t in await discoverer.discover("repo")]

        assert "src/app.py" not in paths
        assert "node_modules/left-pad/index.js" in paths

    @pytest.mark.asyncio
    async def test_discovery_is_restartable(self):
        discoverer = FileDiscoverer(FakeContentStore(REPO_FILES))

        assert await discoverer.discover("repo") == await discoverer.discover("repo")


class TestDiscoveryFailures:
    """Partial-failure isolation."""

    @pytest.mark.asyncio
    async def test_subtree_failure_does_not_affect_siblings(self):
        healthy = await FileDiscoverer(FakeContentStore(REPO_FILES)).discover("repo")
        store = FakeContentStore(REPO_FILES, failing_dirs=["src/util"])

        report = await FileDiscoverer(store).scan_tree("repo")

        assert "src/util" in report.failed_subtrees
        siblings = [t.path for t in healthy if not t.path.startswith("src/util/")]
        assert [t.path for t in report.tasks] == siblings

    @pytest.mark.asyncio
    async def test_root_listing_failure_is_fatal(self):
        store = FakeContentStore(REPO_FILES, failing_dirs=[""])

        with pytest.raises(DiscoveryError):
            await FileDiscoverer(store).discover("repo")

    @pytest.mark.asyncio
    async def test_missing_repository_propagates(self):
        store = FakeContentStore(REPO_FILES, missing=True)

        with pytest.raises(RepositoryNotFoundError):
            await FileDiscoverer(store).discover("repo")


class TestLocalContentStore:
    """Discovery over a real directory."""

    @pytest.mark.asyncio
    async def test_discovers_local_checkout(self, tmp_path):
        repo = tmp_path / "repo"
        (repo / "pkg").mkdir(parents=True)
        (repo / "pkg" / "mod.py").write_text("x = 1\n")
        (repo / "main.py").write_text("import pkg\n")
        (repo / "node_modules").mkdir()
        (repo / "node_modules" / "dep.js").write_text("1")

        store = LocalContentStore()
        tasks = await FileDiscoverer(store).discover(str(repo))

        assert [t.path for t in tasks] == ["main.py", "pkg/mod.py"]
        assert await store.get_content(tasks[1].content_ref) == b"x = 1\n"

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        with pytest.raises(RepositoryNotFoundError):
            await FileDiscoverer(LocalContentStore()).discover(str(tmp_path / "nope"))

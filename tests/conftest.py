"""Shared fixtures: in-memory indexes, fake archive hosts and temp projects."""

import asyncio
import os
from typing import Dict, Iterable, List, Optional

import pytest
import yaml

from rocklock.config import Settings
from rocklock.fetch.checksum import compute_checksum
from rocklock.registry.client import SnapshotIndexClient

ARCHIVE_HOST = "https://archives.test"


def archive_bytes(name: str, version: str) -> bytes:
    """Deterministic archive content for ``name`` at ``version``."""
    return f"archive:{name}:{version}".encode("utf-8")


def archive_url(name: str, version: str) -> str:
    return f"{ARCHIVE_HOST}/{name}-{version}.tar.gz"


def published(name: str, version: str, deps: Iterable[str] = (), build_type: Optional[str] = None,
              checksum: Optional[str] = None, binary_urls: Optional[dict] = None) -> dict:
    """Index record whose checksum matches :func:`archive_bytes`."""
    record = {
        "version": version,
        "dependencies": list(deps),
        "checksum": checksum or compute_checksum(archive_bytes(name, version)),
        "source_url": archive_url(name, version),
    }
    if build_type:
        record["build_type"] = build_type
    if binary_urls:
        record["binary_urls"] = binary_urls
    return record


def make_index(spec: Dict[str, List[dict]]) -> SnapshotIndexClient:
    return SnapshotIndexClient(spec)


class FakeDownloader:
    """Async stand-in for the aiohttp transport.

    Serves :func:`archive_bytes` for every URL produced by :func:`archive_url`
    unless ``content`` overrides it; ``failures`` lists exceptions raised, in
    order, for a URL before it succeeds.
    """

    def __init__(self, content: Optional[Dict[str, bytes]] = None,
                 failures: Optional[Dict[str, list]] = None, delay: float = 0.0):
        self.content = dict(content or {})
        self.failures = {url: list(excs) for url, excs in (failures or {}).items()}
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.peak = 0

    async def __call__(self, url: str, cancel: asyncio.Event) -> bytes:
        self.calls.append(url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            pending = self.failures.get(url)
            if pending:
                raise pending.pop(0)
            if url in self.content:
                return self.content[url]
            stem = url[len(ARCHIVE_HOST) + 1:-len(".tar.gz")]
            name, _, version = stem.rpartition("-")
            return archive_bytes(name, version)
        finally:
            self.active -= 1


class RecordingInstaller:
    """Installer that remembers what it was handed."""

    def __init__(self):
        self.calls = []

    def install(self, lock, archives):
        self.calls.append((lock, dict(archives)))


@pytest.fixture
def project_dir(tmp_path):
    """Empty project directory; write the manifest with ``write_manifest``."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def write_manifest(project_dir):
    def _write(dependencies: Dict[str, str], dev_dependencies: Optional[Dict[str, str]] = None,
               name: str = "app") -> str:
        os.makedirs(project_dir, exist_ok=True)
        data = {"name": name, "version": "1.0.0", "dependencies": dependencies}
        if dev_dependencies:
            data["dev_dependencies"] = dev_dependencies
        path = project_dir / "package.yaml"
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def settings(project_dir, tmp_path):
    """Settings pointing at the temp project and a private cache directory."""
    return Settings(
        project_dir=str(project_dir),
        index="https://index.test/",
        cache_dir=str(tmp_path / "cache"),
        target="x86_64-unknown-linux-gnu",
    )

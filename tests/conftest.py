"""Shared fixtures for mise-s3-cache tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mise_s3_cache.core.config import CacheConfig
from mise_s3_cache.persistence.memory_backend import MemoryObjectStore
from mise_s3_cache.services.cache_manager import CacheManager
from tests.fakes.fake_installer import FakeInstaller
from tests.fakes.fake_manifest import FakeManifest

NODE_FILES = {
    "bin/node": "#!/bin/sh\necho node\n",
    "bin/npm": "#!/bin/sh\necho npm\n",
    "include/node/node.h": "#define NODE_VERSION 18\n",
    "lib/node_modules/npm/package.json": '{"name": "npm"}\n',
    "share/doc/node/README.md": "# Node.js\n",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host's cache settings out of every test."""
    for name in list(os.environ):
        if name.startswith("MISE_S3_CACHE_") or name == "AWS_ENDPOINT_URL":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(bucket="test-bucket", backend="memory", state_dir=tmp_path / "state")


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def manifest() -> FakeManifest:
    return FakeManifest([("node", "18.17.0")])


@pytest.fixture
def installer(tmp_path: Path) -> FakeInstaller:
    return FakeInstaller(tmp_path / "installs")


@pytest.fixture
def manager(
    config: CacheConfig,
    store: MemoryObjectStore,
    manifest: FakeManifest,
    installer: FakeInstaller,
) -> CacheManager:
    return CacheManager(
        config,
        store,
        manifest=manifest,
        installer=installer,
        platform="linux",
        arch="x86_64",
    )


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def relative_files(root: Path) -> dict[str, str]:
    return {
        p.relative_to(root).as_posix(): p.read_text()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def node_install(tmp_path: Path) -> Path:
    """A five-file node@18.17.0 install tree."""
    return write_tree(tmp_path / "src" / "node" / "18.17.0", NODE_FILES)

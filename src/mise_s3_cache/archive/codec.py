"""Tar-based archive codec for install trees.

Codec methods are synchronous: packing and unpacking are CPU/disk bound,
so callers on the event loop push them to a worker thread.
"""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import Path
from typing import Literal

from mise_s3_cache.core.exceptions import ArchiveError

log = logging.getLogger(__name__)

Compression = Literal["gzip", "bz2", "xz", "none"]

_WRITE_MODES: dict[str, str] = {
    "gzip": "w:gz",
    "bz2": "w:bz2",
    "xz": "w:xz",
    "none": "w",
}


class TarArchiveCodec:
    """Packs a directory into a (compressed) tar file and back.

    Symlinks are archived as links, never followed. Broken links and links
    leaving the tree abort the pack, as do unreadable files; the partial
    archive is removed.
    """

    def __init__(self, compression: Compression = "gzip") -> None:
        if compression not in _WRITE_MODES:
            raise ValueError(f"Unknown compression: {compression!r}")
        self._compression = compression

    @property
    def compressed(self) -> bool:
        return self._compression != "none"

    def pack(self, source_dir: Path, archive_path: Path) -> int:
        """Archive everything under *source_dir*, returning the archive size in bytes."""
        if not source_dir.is_dir():
            raise ArchiveError(f"Not a directory: {source_dir}")

        log.debug("Creating archive from %s to %s", source_dir, archive_path)
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(archive_path, _WRITE_MODES[self._compression]) as tar:
                for path, arcname in self._walk(source_dir):
                    tar.add(path, arcname=arcname, recursive=False)
        except ArchiveError:
            archive_path.unlink(missing_ok=True)
            raise
        except (OSError, tarfile.TarError) as e:
            archive_path.unlink(missing_ok=True)
            raise ArchiveError(f"Failed to create archive from {source_dir}: {e}") from e

        return archive_path.stat().st_size

    def unpack(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract *archive_path* into *dest_dir*, creating it if needed."""
        log.debug("Extracting %s to %s", archive_path, dest_dir)
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive_path, "r:*") as tar:
                tar.extractall(dest_dir, filter="data")
        except (OSError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to extract archive to {dest_dir}: {e}") from e

    @staticmethod
    def _walk(source_dir: Path):
        """Yield ``(path, arcname)`` in a stable order, directories before contents."""
        for root, dirs, files in os.walk(source_dir):
            dirs.sort()
            root_path = Path(root)
            for name in dirs + sorted(files):
                path = root_path / name
                arcname = path.relative_to(source_dir).as_posix()
                if path.is_symlink():
                    _check_link(path, arcname)
                yield path, arcname


def _check_link(path: Path, arcname: str) -> None:
    """Reject links that extraction with the ``data`` filter would refuse."""
    if not path.exists():
        raise ArchiveError(f"Broken symlink: {path}")

    target = os.readlink(path)
    if os.path.isabs(target):
        raise ArchiveError(f"Symlink to absolute path: {path} -> {target}")

    resolved = os.path.normpath(os.path.join(os.path.dirname(arcname), target))
    if resolved == ".." or resolved.startswith("../"):
        raise ArchiveError(f"Symlink points outside the install tree: {path} -> {target}")

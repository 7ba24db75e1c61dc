"""Cache key computation: structural, deterministic store locations.

Keys are not content hashes. One key identifies one slot per
``(tool, version, platform, arch)``; storing again overwrites it.
"""

from __future__ import annotations

import dataclasses

from mise_s3_cache.utils.system import get_architecture, get_platform

ARCHIVE_NAME = "archive.tar.gz"
METADATA_NAME = "metadata.json"
CHECKSUM_NAME = "checksum.sha256"


def derive_key(
    prefix: str,
    tool: str,
    version: str,
    platform: str | None = None,
    arch: str | None = None,
) -> str:
    """Compute ``{prefix}/tools/{tool}/{version}/{platform}-{arch}``.

    No escaping is applied: *tool* and *version* must already be validated.
    Platform and arch default to the running host.
    """
    platform = platform or get_platform()
    arch = arch or get_architecture()
    return f"{prefix}/tools/{tool}/{version}/{platform}-{arch}"


@dataclasses.dataclass(frozen=True)
class CacheKeys:
    """The three object keys that make up one cache entry."""

    base: str

    @property
    def archive(self) -> str:
        return f"{self.base}/{ARCHIVE_NAME}"

    @property
    def metadata(self) -> str:
        return f"{self.base}/{METADATA_NAME}"

    @property
    def checksum(self) -> str:
        return f"{self.base}/{CHECKSUM_NAME}"

    @classmethod
    def for_tool(
        cls,
        prefix: str,
        tool: str,
        version: str,
        platform: str | None = None,
        arch: str | None = None,
    ) -> CacheKeys:
        return cls(derive_key(prefix, tool, version, platform, arch))

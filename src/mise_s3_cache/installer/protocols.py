"""Tool installer protocol."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class IToolInstaller(Protocol):
    """Materializes tool versions on local disk. Failures raise InstallerError."""

    async def install(self, tool: str, version: str) -> None:
        """Install ``tool@version``."""
        ...

    async def locate_install_path(self, tool: str, version: str) -> Path:
        """Directory where ``tool@version`` is (or would be) installed."""
        ...

    async def version(self) -> str:
        """Installer version recorded in cache metadata."""
        ...

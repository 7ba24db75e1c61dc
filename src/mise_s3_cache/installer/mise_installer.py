"""Tool installer backed by the ``mise`` CLI."""

from __future__ import annotations

import logging
from pathlib import Path

from mise_s3_cache.core.exceptions import InstallerError
from mise_s3_cache.utils.process import CommandResult, CommandRunner, run_command

log = logging.getLogger(__name__)


class MiseInstaller:
    """Installs and locates tool versions by shelling out to ``mise``."""

    def __init__(self, executable: str = "mise", runner: CommandRunner | None = None) -> None:
        self._executable = executable
        self._run = runner or run_command

    async def _invoke(self, *args: str) -> CommandResult:
        try:
            result = await self._run(self._executable, *args)
        except OSError as e:
            raise InstallerError(f"Failed to execute {self._executable} {args[0]}: {e}") from e
        if not result.ok:
            raise InstallerError(
                f"{self._executable} {args[0]} failed: {result.stderr.strip()}",
                stderr=result.stderr,
            )
        return result

    async def install(self, tool: str, version: str) -> None:
        """Run ``mise install tool@version``."""
        log.info("Installing %s@%s", tool, version)
        await self._invoke("install", f"{tool}@{version}")

    async def locate_install_path(self, tool: str, version: str) -> Path:
        """Run ``mise where tool@version`` and return the reported directory."""
        result = await self._invoke("where", f"{tool}@{version}")
        path = result.stdout.strip()
        if not path:
            raise InstallerError(f"{self._executable} where returned no path for {tool}@{version}")
        return Path(path)

    async def version(self) -> str:
        """The installer's version string, or ``unknown`` when it cannot be run."""
        try:
            result = await self._invoke("version")
        except InstallerError as e:
            log.debug("Could not determine mise version: %s", e)
            return "unknown"
        return result.stdout.strip() or "unknown"

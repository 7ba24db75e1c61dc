"""Tool manifest protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mise_s3_cache.models import ToolSpec


@runtime_checkable
class IToolManifest(Protocol):
    """Source of the ``(tool, version)`` pairs a project declares."""

    def list_declared_tools(self) -> list[ToolSpec]:
        """Every declared tool, one version per tool."""
        ...

    async def is_declared(self, tool: str, version: str) -> bool:
        """Whether the project declares exactly ``tool@version``."""
        ...

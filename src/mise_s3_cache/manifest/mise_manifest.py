"""Project tool manifest reader for ``.mise.toml`` and ``.tool-versions``.

Discovery is anchored at an explicit ``project_dir`` rather than the
process working directory, so lookups are deterministic in tests.
"""

from __future__ import annotations

import logging
import re
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from mise_s3_cache.core.exceptions import ManifestError
from mise_s3_cache.models import ToolSpec
from mise_s3_cache.utils.process import CommandRunner, run_command
from mise_s3_cache.utils.system import find_project_root as find_git_root
from mise_s3_cache.utils.validation import is_valid_tool_name, is_valid_version

log = logging.getLogger(__name__)

MISE_TOML_NAMES = (".mise.toml", "mise.toml")
TOOL_VERSIONS_NAME = ".tool-versions"

_TOOL_LINE_RE = re.compile(r"""^([A-Za-z0-9_.-]+)\s*=\s*['"]([^'"]+)['"]""")
_SECTION_RE = re.compile(r"^\[([^\]]+)\]")


class _MiseLsEntry(BaseModel):
    name: str
    version: str


class _MiseLsVersion(BaseModel):
    version: str


# ``mise ls --json`` has shipped both a flat list and a per-tool mapping.
_MISE_LS_LIST = TypeAdapter(list[_MiseLsEntry])
_MISE_LS_MAP = TypeAdapter(dict[str, list[_MiseLsVersion]])


def parse_mise_ls_json(raw: str) -> set[ToolSpec] | None:
    """Decode ``mise ls --json`` output. Returns None when the shape is unrecognised."""
    try:
        return {ToolSpec(tool=e.name, version=e.version) for e in _MISE_LS_LIST.validate_json(raw)}
    except ValidationError:
        pass
    try:
        mapping = _MISE_LS_MAP.validate_json(raw)
    except ValidationError:
        return None
    return {ToolSpec(tool=t, version=v.version) for t, versions in mapping.items() for v in versions}


def _version_from_toml_value(value: Any) -> str | None:
    """``"18"``, ``["18", "20"]`` (first wins) or ``{version = "18"}``."""
    if isinstance(value, str):
        return value
    if isinstance(value, list) and value and isinstance(value[0], str):
        return value[0]
    if isinstance(value, dict) and isinstance(value.get("version"), str):
        return value["version"]
    return None


def parse_mise_toml_text(content: str, *, source: str = "<string>") -> list[ToolSpec]:
    """Read the ``[tools]`` table, falling back to a line regex for invalid TOML."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError:
        log.warning("Failed to parse %s as TOML, using regex fallback", source)
        return _parse_mise_toml_regex(content)

    tools_section = data.get("tools")
    if not isinstance(tools_section, dict):
        return []

    tools = []
    for tool, value in tools_section.items():
        version = _version_from_toml_value(value)
        if version is not None:
            tools.append(ToolSpec(tool=tool, version=version))
    return tools


def _parse_mise_toml_regex(content: str) -> list[ToolSpec]:
    tools = []
    section: str | None = None
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        header = _SECTION_RE.match(line)
        if header:
            section = header.group(1).strip()
            continue
        if section not in (None, "tools"):
            continue
        match = _TOOL_LINE_RE.match(line)
        if match:
            tools.append(ToolSpec(tool=match.group(1), version=match.group(2)))
    return tools


def parse_tool_versions_text(content: str) -> list[ToolSpec]:
    """``tool version [fallback...]`` per line; comments and invalid entries skipped."""
    tools = []
    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        tool, version = parts[0], parts[1]
        if is_valid_tool_name(tool) and is_valid_version(version):
            tools.append(ToolSpec(tool=tool, version=version))
        else:
            log.warning("Invalid tool/version in .tool-versions: %s %s", tool, version)
    return tools


def _dedupe(tools: list[ToolSpec]) -> list[ToolSpec]:
    """Keep the first version seen for each tool."""
    seen: dict[str, ToolSpec] = {}
    for spec in tools:
        seen.setdefault(spec.tool, spec)
    return list(seen.values())


class MiseManifest:
    """Reads the tools a project declares.

    Args:
        project_dir: Directory the lookup starts from.
        runner: Command runner used for ``mise ls --json``.
        use_mise_command: Consult ``mise ls --json`` in ``is_declared``.
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        runner: CommandRunner | None = None,
        use_mise_command: bool = True,
    ) -> None:
        self._project_dir = project_dir
        self._run = runner or run_command
        self._use_mise_command = use_mise_command

    @property
    def project_dir(self) -> Path:
        return self._project_dir

    # ── Parsing ──────────────────────────────────────────────────────

    def parse_mise_toml(self, path: Path) -> list[ToolSpec]:
        return parse_mise_toml_text(self._read(path), source=str(path))

    def parse_tool_versions(self, path: Path) -> list[ToolSpec]:
        return parse_tool_versions_text(self._read(path))

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestError(f"Failed to read {path}: {e}") from e

    def _tools_in_dir(self, directory: Path) -> list[ToolSpec]:
        """Declarations in one directory, mise.toml files ahead of .tool-versions.

        Unreadable files are logged and skipped.
        """
        tools: list[ToolSpec] = []
        for name in (*MISE_TOML_NAMES, TOOL_VERSIONS_NAME):
            path = directory / name
            if not path.is_file():
                continue
            try:
                if name == TOOL_VERSIONS_NAME:
                    tools.extend(self.parse_tool_versions(path))
                else:
                    tools.extend(self.parse_mise_toml(path))
            except ManifestError as e:
                log.warning("Skipping manifest %s: %s", path, e)
        return tools

    # ── Queries ──────────────────────────────────────────────────────

    def list_declared_tools(self) -> list[ToolSpec]:
        """Tools declared directly in ``project_dir``, one version per tool."""
        return _dedupe(self._tools_in_dir(self._project_dir))

    async def is_declared(self, tool: str, version: str) -> bool:
        """Whether ``tool@version`` is declared from ``project_dir`` up to the git root."""
        target = ToolSpec(tool=tool, version=version)
        checked_mise = False

        for directory in self._ancestors():
            has_mise_toml = any((directory / n).is_file() for n in MISE_TOML_NAMES)
            if has_mise_toml and self._use_mise_command and not checked_mise:
                checked_mise = True
                active = await self._mise_ls()
                if active is not None and target in active:
                    return True

            if target in self._tools_in_dir(directory):
                return True

            if (directory / ".git").exists():
                break
        return False

    def find_project_root(self) -> Path | None:
        """Nearest ancestor holding ``.git`` or a manifest file."""
        markers = (".git", TOOL_VERSIONS_NAME, *MISE_TOML_NAMES)
        for directory in self._ancestors():
            if any((directory / m).exists() for m in markers):
                return directory
        return None

    def all_project_tools(self) -> list[ToolSpec]:
        """Declarations from ``project_dir`` up to the git root; nearest wins.

        Outside a git checkout the walk stops at the nearest manifest.
        """
        root = find_git_root(self._project_dir) or self.find_project_root()
        if root is None:
            return []

        tools: list[ToolSpec] = []
        for directory in self._ancestors():
            tools.extend(self._tools_in_dir(directory))
            if directory == root:
                break
        return _dedupe(tools)

    def validate_project_config(self) -> list[str]:
        """Human-readable problems with the manifests in ``project_dir``."""
        issues: list[str] = []
        found_any = False

        for name in (*MISE_TOML_NAMES, TOOL_VERSIONS_NAME):
            path = self._project_dir / name
            if not path.is_file():
                continue
            found_any = True
            try:
                tools = (
                    self.parse_tool_versions(path)
                    if name == TOOL_VERSIONS_NAME
                    else self.parse_mise_toml(path)
                )
            except ManifestError as e:
                issues.append(f"Failed to parse {name}: {e}")
                continue
            if not tools:
                issues.append(f"{name} exists but contains no valid tools")
            else:
                log.debug("Found %d tools in %s", len(tools), name)

        if not found_any:
            issues.append("No .mise.toml or .tool-versions file found in project directory")
        return issues

    # ── Internals ────────────────────────────────────────────────────

    def _ancestors(self) -> list[Path]:
        start = self._project_dir.resolve()
        return [start, *start.parents]

    async def _mise_ls(self) -> set[ToolSpec] | None:
        """Active tools per ``mise ls --json``; None if mise is unavailable."""
        try:
            result = await self._run("mise", "ls", "--json")
        except OSError:
            log.debug("mise command not available")
            return None
        if not result.ok:
            log.debug("mise ls failed: %s", result.stderr.strip())
            return None

        active = parse_mise_ls_json(result.stdout)
        if active is None:
            log.debug("Unrecognised mise ls --json output, ignoring")
        return active

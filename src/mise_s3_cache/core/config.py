"""pydantic-settings configuration plus the config-file loader.

Precedence, lowest to highest: field defaults, config files (project then
user), environment variables::

    export MISE_S3_CACHE_BUCKET=my-team-tool-cache
    export MISE_S3_CACHE_REGION=eu-west-1
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

log = logging.getLogger(__name__)

PROJECT_CONFIG_FILES = (".mise-s3-cache.toml", ".mise-s3-cache.conf")
USER_CONFIG_FILES = (".config/mise/s3-cache.toml", ".config/mise/s3-cache.conf")

# Legacy shell-style ``KEY=value`` names -> CacheConfig fields
_LEGACY_KEYS = {
    "S3_CACHE_ENABLED": "enabled",
    "S3_CACHE_BUCKET": "bucket",
    "S3_CACHE_REGION": "region",
    "S3_CACHE_PREFIX": "prefix",
    "S3_CACHE_TTL": "ttl_seconds",
    "S3_CACHE_PARALLEL_UPLOADS": "parallel_uploads",
    "S3_CACHE_DEBUG": "debug",
}
_LEGACY_BOOL_FIELDS = frozenset({"enabled", "debug"})
_LEGACY_INT_FIELDS = frozenset({"ttl_seconds", "parallel_uploads"})


def _home_dir() -> Path | None:
    try:
        return Path.home()
    except RuntimeError:
        return None


class CacheConfig(BaseSettings):
    """Cache settings.

    Env vars use the ``MISE_S3_CACHE_`` prefix. ``MISE_S3_CACHE_TTL`` and
    ``AWS_ENDPOINT_URL`` are accepted for compatibility with the shell
    version of the cache hooks.
    """

    model_config = {"env_prefix": "MISE_S3_CACHE_", "extra": "ignore", "populate_by_name": True}

    enabled: bool = True
    bucket: str = ""
    region: str = "us-east-1"
    prefix: str = "mise-cache"
    ttl_seconds: int = Field(
        default=604_800,
        validation_alias=AliasChoices(
            "MISE_S3_CACHE_TTL", "MISE_S3_CACHE_TTL_SECONDS"
        ),
    )
    parallel_uploads: int = Field(default=3, ge=1)
    compression: Literal["gzip", "bz2", "xz", "none"] = "gzip"
    debug: bool = False
    log_file: Path | None = None

    backend: Literal["s3", "file", "memory"] = "s3"
    store_path: Path = Path("./.mise-s3-store")
    endpoint_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MISE_S3_CACHE_ENDPOINT_URL", "AWS_ENDPOINT_URL"
        ),
    )
    state_dir: Path | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats values passed in from config files.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def tools_prefix(self) -> str:
        return f"{self.prefix}/tools"

    def cache_dir(self) -> Path:
        """Per-user directory for local cache state."""
        if self.state_dir is not None:
            return self.state_dir
        home = _home_dir()
        if home is not None:
            return home / ".cache" / "mise-s3"
        return Path(".mise-s3-cache")

    def stats_file_path(self) -> Path:
        return self.cache_dir() / "stats.json"

    def temp_dir(self) -> Path:
        return self.cache_dir() / "tmp"


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Env vars use ``MISE_S3_CACHE_LOG_`` prefix::

        export MISE_S3_CACHE_LOG_LEVEL=DEBUG
        export MISE_S3_CACHE_LOG_FORMAT=json
    """

    model_config = {"env_prefix": "MISE_S3_CACHE_LOG_"}

    level: str = "INFO"
    format: Literal["auto", "console", "json"] = "auto"


def default_config_paths(project_dir: Path | None = None) -> list[Path]:
    """Candidate config files in load order: project first, then user."""
    base = project_dir or Path.cwd()
    paths = [base / name for name in PROJECT_CONFIG_FILES]
    home = _home_dir()
    if home is not None:
        paths.extend(home / name for name in USER_CONFIG_FILES)
    return paths


def parse_legacy_config(content: str) -> dict[str, Any]:
    """Parse the legacy ``S3_CACHE_KEY="value"`` format. Unknown keys are ignored."""
    values: dict[str, Any] = {}
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, _, value = line.partition("=")
        field = _LEGACY_KEYS.get(key.strip())
        if field is None:
            continue
        value = value.strip().strip('"')

        if field in _LEGACY_BOOL_FIELDS:
            values[field] = value.lower() == "true"
        elif field in _LEGACY_INT_FIELDS:
            if value.isdigit():
                values[field] = int(value)
        else:
            values[field] = value
    return values


def parse_config_file(path: Path) -> dict[str, Any]:
    """Read one config file into a dict of CacheConfig field values.

    ``.toml`` files are parsed as TOML; if that fails the content is retried
    as the legacy key=value format. Any other extension is legacy format.
    """
    content = path.read_text(encoding="utf-8")
    if path.suffix != ".toml":
        return parse_legacy_config(content)

    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        log.warning("Failed to parse %s as TOML (%s), trying key=value format", path, e)
        return parse_legacy_config(content)

    known = set(CacheConfig.model_fields)
    values = {k: v for k, v in data.items() if k in known}
    # An empty bucket in a file never clears one set by an earlier file.
    if not values.get("bucket"):
        values.pop("bucket", None)
    return values


def _validate_file_values(values: dict[str, Any]) -> None:
    """Check each value against its CacheConfig field without reading the environment."""
    for name, value in values.items():
        field = CacheConfig.model_fields[name]
        annotation = field.annotation
        if field.metadata:
            annotation = Annotated[annotation, *field.metadata]
        TypeAdapter(annotation).validate_python(value)


def load_config(
    config_path: Path | None = None,
    *,
    project_dir: Path | None = None,
) -> CacheConfig:
    """Build the effective configuration.

    When *config_path* is given only that file is read; otherwise every
    existing default path is merged in order. Unreadable files, and files
    holding a value of the wrong type, are logged and skipped whole.
    """
    paths = [config_path] if config_path is not None else default_config_paths(project_dir)

    merged: dict[str, Any] = {}
    for path in paths:
        if not path.exists():
            continue
        try:
            values = parse_config_file(path)
            _validate_file_values(values)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            log.warning("Failed to load config from %s: %s", path, e)
            continue
        merged.update(values)
        log.info("Loaded config from %s", path)

    return CacheConfig(**merged)

"""CLI for mise-s3-cache: check / restore / store / warm / cleanup commands.

Designed to be called from mise hooks. With ``--hook-mode`` output is
suppressed, and configuration, connection and cache failures exit 0 so a
broken cache never breaks ``mise install``. Check and restore still exit 1
on a miss so hooks can fall back to a regular install.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Awaitable, Callable, NoReturn, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from mise_s3_cache.core.config import CacheConfig, ObservabilityConfig, load_config
from mise_s3_cache.core.exceptions import CacheError, ConfigError, TransportError
from mise_s3_cache.core.logging_config import resolve_level, setup_logging
from mise_s3_cache.core.startup_checks import validate_settings
from mise_s3_cache.installer import MiseInstaller
from mise_s3_cache.manifest import MiseManifest
from mise_s3_cache.persistence import create_object_store
from mise_s3_cache.services import CacheManager
from mise_s3_cache.utils.system import human_readable_size, is_ci_environment

log = logging.getLogger(__name__)

app = typer.Typer(name="s3-cache", help="Intelligent S3 caching for mise tool installations")
console = Console()

T = TypeVar("T")


@dataclasses.dataclass
class _GlobalOptions:
    verbose: bool = False
    config_path: Optional[Path] = None


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
) -> None:
    """Intelligent S3 caching for mise tool installations."""
    ctx.obj = _GlobalOptions(verbose=verbose, config_path=config)


def _options(ctx: typer.Context) -> _GlobalOptions:
    return ctx.obj if isinstance(ctx.obj, _GlobalOptions) else _GlobalOptions()


def _load(ctx: typer.Context, hook_mode: bool) -> CacheConfig:
    """Configure logging and load the effective config, honouring hook mode."""
    opts = _options(ctx)
    setup_logging(ObservabilityConfig(), level=resolve_level(hook_mode=hook_mode, verbose=opts.verbose))

    try:
        config = load_config(opts.config_path, project_dir=Path.cwd())
    except ValueError as e:
        # pydantic ValidationError on bad field values
        _fail(f"Invalid configuration: {e}", hook_mode)

    if config.debug or config.log_file is not None:
        setup_logging(
            ObservabilityConfig(),
            level=resolve_level(hook_mode=hook_mode, verbose=opts.verbose, debug=config.debug),
            log_file=config.log_file,
        )

    if not config.enabled:
        if not hook_mode:
            console.print("S3 cache is disabled")
        raise typer.Exit(0)

    try:
        validate_settings(config)
    except ConfigError as e:
        _fail(str(e), hook_mode)
    return config


def _build_manager(config: CacheConfig, hook_mode: bool) -> CacheManager:
    project_dir = Path.cwd()
    try:
        store = create_object_store(config)
    except ImportError as e:
        _fail(str(e), hook_mode)
    return CacheManager(
        config,
        store,
        manifest=MiseManifest(project_dir),
        installer=MiseInstaller(),
    )


def _fail(message: str, hook_mode: bool, code: int = 1) -> NoReturn:
    """Report an error and exit; hook mode logs it and exits 0."""
    if hook_mode:
        log.error("Hook mode error (non-fatal): %s", message)
        raise typer.Exit(0)
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code)


def _run(operation: Callable[[], Awaitable[T]], hook_mode: bool) -> T:
    """Run an async operation, mapping cache errors to exit codes."""
    try:
        return asyncio.run(operation())
    except CacheError as e:
        _fail(str(e), hook_mode)


def _require_target(tool: Optional[str], version: Optional[str], hook_mode: bool) -> None:
    if tool is None or version is None:
        if hook_mode:
            raise typer.Exit(0)
        raise typer.BadParameter("Must provide --all or both TOOL and VERSION")


# ── Commands ─────────────────────────────────────────────────────────


@app.command()
def check(
    ctx: typer.Context,
    tool: Optional[str] = typer.Argument(None, help="Tool name (e.g. node, terraform)"),
    version: Optional[str] = typer.Argument(None, help="Tool version (e.g. 18.17.0)"),
    all_tools: bool = typer.Option(False, "--all", help="Check all tools in the current project"),
    hook_mode: bool = typer.Option(False, "--hook-mode", help="Suppress output for mise hooks"),
) -> None:
    """Check if a tool version exists in the cache. Exits 1 when it does not."""
    config = _load(ctx, hook_mode)
    manager = _build_manager(config, hook_mode)

    if all_tools:
        report = _run(manager.analyze, hook_mode)
        if not hook_mode:
            for spec in report.cached:
                console.print(f"[green]✓[/green] {spec} cached")
            for spec in report.missing:
                console.print(f"[red]✗[/red] {spec} not in cache")
        raise typer.Exit(0 if not report.missing else 1)

    _require_target(tool, version, hook_mode)
    exists = _run(lambda: manager.exists(tool, version), hook_mode)
    if not hook_mode:
        if exists:
            console.print(f"[green]✓[/green] {tool}@{version} exists in cache")
        else:
            console.print(f"[red]✗[/red] {tool}@{version} not found in cache")
    raise typer.Exit(0 if exists else 1)


@app.command()
def restore(
    ctx: typer.Context,
    tool: Optional[str] = typer.Argument(None, help="Tool name"),
    version: Optional[str] = typer.Argument(None, help="Tool version"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Installation path"),
    all_tools: bool = typer.Option(False, "--all", help="Restore all project tools"),
    selective: bool = typer.Option(False, "--selective", help="Only restore tools present in the cache"),
    hook_mode: bool = typer.Option(False, "--hook-mode", help="Suppress output for mise hooks"),
) -> None:
    """Download and restore a tool from the cache."""
    config = _load(ctx, hook_mode)
    manager = _build_manager(config, hook_mode)

    if all_tools:
        restored = _run(lambda: manager.restore_project(selective=selective), hook_mode)
        if not hook_mode:
            for spec in restored:
                console.print(f"[green]✓[/green] Restored {spec}")
            console.print(f"Restored {len(restored)} tools from cache")
        return

    _require_target(tool, version, hook_mode)
    if path is not None:
        ok = _run(lambda: manager.restore(tool, version, path), hook_mode)
    else:
        ok = _run(lambda: manager.restore_auto(tool, version), hook_mode)

    if ok:
        if not hook_mode:
            console.print(f"[green]✓[/green] Restored {tool}@{version} from cache")
        return
    if not hook_mode:
        console.print(f"[red]✗[/red] Failed to restore {tool}@{version} from cache")
    raise typer.Exit(1)


@app.command()
def store(
    ctx: typer.Context,
    tool: Optional[str] = typer.Argument(None, help="Tool name"),
    version: Optional[str] = typer.Argument(None, help="Tool version"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Installation path to cache"),
    all_tools: bool = typer.Option(False, "--all", help="Store all installed project tools"),
    hook_mode: bool = typer.Option(False, "--hook-mode", help="Suppress output for mise hooks"),
) -> None:
    """Store a tool installation in the cache."""
    config = _load(ctx, hook_mode)
    manager = _build_manager(config, hook_mode)

    if all_tools:
        stored = _run(manager.store_installed, hook_mode)
        if not hook_mode:
            for spec in stored:
                console.print(f"[green]✓[/green] Stored {spec}")
            console.print(f"Stored {len(stored)} tools in cache")
        return

    _require_target(tool, version, hook_mode)
    if path is not None:
        written = _run(lambda: manager.store(tool, version, path), hook_mode)
    else:
        written = _run(lambda: manager.store_auto(tool, version), hook_mode)

    if hook_mode:
        return
    if written:
        console.print(f"[green]✓[/green] Stored {tool}@{version} in cache")
    else:
        console.print(f"[yellow]Skipped {tool}@{version}: not declared by this project[/yellow]")


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show local cache statistics."""
    config = _load(ctx, hook_mode=False)
    manager = _build_manager(config, hook_mode=False)
    try:
        data = manager.stats()
    except CacheError as e:
        _fail(str(e), hook_mode=False)

    console.print("[bold]S3 Cache Statistics[/bold]")
    console.print(f"Cache hits: {data.cache_hits}")
    console.print(f"Cache misses: {data.cache_misses}")
    console.print(f"Total downloads: {data.total_downloads}")
    if data.hit_rate is not None:
        console.print(f"Hit rate: {data.hit_rate:.1f}%")
    console.print(f"Total savings: {human_readable_size(data.total_savings_bytes)}")

    if not data.tools:
        return

    table = Table(title="Per-tool statistics")
    table.add_column("Tool", style="cyan")
    table.add_column("Hits", justify="right")
    table.add_column("Misses", justify="right")
    table.add_column("Avg time", justify="right")
    table.add_column("Size", justify="right")
    for name, tool_stats in sorted(data.tools.items()):
        table.add_row(
            name,
            str(tool_stats.cache_hits),
            str(tool_stats.cache_misses),
            f"{tool_stats.average_download_time_ms}ms",
            human_readable_size(tool_stats.size_bytes),
        )
    console.print(table)


@app.command()
def status(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", help="No output; exit 1 when the store is unreachable"),
) -> None:
    """Show configuration and remote store status."""
    config = _load(ctx, hook_mode=False)
    manager = _build_manager(config, hook_mode=False)
    result = _run(manager.store_status, hook_mode=False)

    if quiet:
        raise typer.Exit(0 if result.connected else 1)

    console.print("[bold]S3 Cache Status[/bold]")
    console.print(f"Backend: {config.backend}")
    console.print(f"Region: {result.region}")
    console.print(f"Bucket: {result.bucket or '-'}")
    console.print(f"Prefix: {result.prefix}")
    console.print(f"CI environment: {'yes' if is_ci_environment() else 'no'}")
    if result.connected:
        console.print("[green]Connection: OK[/green]")
    else:
        console.print(f"[red]Connection: FAILED[/red] {result.error}")
    if result.cache_size_bytes is not None:
        console.print(f"Cache size: {human_readable_size(result.cache_size_bytes)}")
    if result.object_count is not None:
        console.print(f"Objects: {result.object_count}")


@app.command()
def analyze(ctx: typer.Context) -> None:
    """Analyze the current project's cache status."""
    config = _load(ctx, hook_mode=False)
    manager = _build_manager(config, hook_mode=False)
    report = _run(manager.analyze, hook_mode=False)

    if report.total == 0:
        console.print("[yellow]No tools found in .mise.toml or .tool-versions[/yellow]")
        return

    table = Table(title="Project cache analysis")
    table.add_column("Tool", style="cyan")
    table.add_column("Version")
    table.add_column("Cached")
    for spec in report.cached:
        table.add_row(spec.tool, spec.version, "[green]yes[/green]")
    for spec in report.missing:
        table.add_row(spec.tool, spec.version, "[red]no[/red]")
    console.print(table)

    console.print(
        f"Cache hit rate: {report.hit_rate_percent}% "
        f"({len(report.cached)}/{report.total} tools cached)"
    )
    if report.missing:
        console.print("Run 's3-cache warm' to populate the cache with missing tools")


@app.command()
def warm(
    ctx: typer.Context,
    parallel: Optional[int] = typer.Option(None, "--parallel", "-p", min=1, help="Maximum parallel operations"),
    hook_mode: bool = typer.Option(False, "--hook-mode", help="Suppress output for mise hooks"),
    ci_mode: bool = typer.Option(False, "--ci-mode", help="Exit 1 when any tool fails to warm"),
) -> None:
    """Install and cache every project tool missing from the cache."""
    config = _load(ctx, hook_mode)
    manager = _build_manager(config, hook_mode)
    report = _run(lambda: manager.warm(parallel), hook_mode)

    if not hook_mode:
        console.print(
            f"Already cached: {len(report.already_cached)}, "
            f"stored: {len(report.stored)}, failed: {len(report.failed)}"
        )
        for spec in report.failed:
            console.print(f"[red]✗[/red] Failed to warm {spec}")

    if ci_mode and report.failed and not hook_mode:
        raise typer.Exit(1)


@app.command()
def cleanup(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", "-d", min=0, help="Age in days for cleanup"),
    temp_only: bool = typer.Option(False, "--temp-only", help="Only clean local temporary files"),
) -> None:
    """Delete old cache entries, or only local temporary files."""
    config = _load(ctx, hook_mode=False)
    manager = _build_manager(config, hook_mode=False)

    if temp_only:
        count = manager.cleanup_temp_files()
        console.print(f"Cleaned up {count} temporary files")
        return

    deleted = _run(lambda: manager.cleanup(days), hook_mode=False)
    console.print(f"Removed {len(deleted)} objects older than {days} days")


@app.command("test")
def test_connection(ctx: typer.Context) -> None:
    """Test connectivity and permissions against the remote store."""
    config = _load(ctx, hook_mode=False)
    manager = _build_manager(config, hook_mode=False)
    try:
        manager.test_connectivity()
    except TransportError as e:
        console.print(f"[red]✗ Connectivity test failed:[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]✓ Connectivity test passed[/green]")


if __name__ == "__main__":
    app()

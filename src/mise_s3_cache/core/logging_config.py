"""Structured logging configuration using structlog.

Colored console output on a TTY, JSON lines otherwise (CI logs, hook
invocations whose stderr is captured by mise).
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mise_s3_cache.core.config import ObservabilityConfig


def resolve_level(*, hook_mode: bool, verbose: bool, debug: bool = False) -> int:
    """Hook mode stays quiet unless verbose; interactive runs log INFO or DEBUG."""
    if hook_mode:
        return logging.WARNING if verbose else logging.ERROR
    if verbose or debug:
        return logging.DEBUG
    return logging.INFO


def setup_logging(
    config: ObservabilityConfig,
    *,
    level: int | None = None,
    log_file: Path | None = None,
) -> None:
    """Configure structured logging on the root logger.

    *level* overrides ``config.level``. When *log_file* is set, JSON lines
    are also appended there.
    """
    if level is None:
        level = getattr(logging, config.level.upper(), logging.INFO)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    use_json = config.format == "json" or (config.format == "auto" and not sys.stderr.isatty())
    renderer = (
        structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
            )
        )
        root.addHandler(file_handler)

    root.setLevel(level)
    logging.getLogger("mise_s3_cache").setLevel(level)
    # boto's own debug output drowns everything else
    logging.getLogger("botocore").setLevel(max(level, logging.WARNING))
    logging.getLogger("boto3").setLevel(max(level, logging.WARNING))

"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from mise_s3_cache.core.config import ObservabilityConfig
from mise_s3_cache.core.logging_config import resolve_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    @pytest.mark.parametrize(
        ("hook_mode", "verbose", "debug", "expected"),
        [
            (True, False, False, logging.ERROR),
            (True, True, False, logging.WARNING),
            (True, False, True, logging.ERROR),
            (False, False, False, logging.INFO),
            (False, True, False, logging.DEBUG),
            (False, False, True, logging.DEBUG),
        ],
    )
    def test_levels(self, hook_mode: bool, verbose: bool, debug: bool, expected: int) -> None:
        assert resolve_level(hook_mode=hook_mode, verbose=verbose, debug=debug) == expected


class TestSetupLogging:
    def test_sets_levels(self) -> None:
        setup_logging(ObservabilityConfig(format="console"), level=logging.WARNING)
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("mise_s3_cache").level == logging.WARNING
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_level_from_config(self) -> None:
        setup_logging(ObservabilityConfig(level="debug", format="json"))
        assert logging.getLogger().level == logging.DEBUG

    def test_log_file_gets_json_lines(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "cache.log"
        setup_logging(ObservabilityConfig(format="json"), level=logging.INFO, log_file=log_file)

        logging.getLogger("mise_s3_cache.test").info("Restored %s", "node@18.17.0")
        for handler in logging.getLogger().handlers:
            handler.flush()

        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["event"] == "Restored node@18.17.0"
        assert record["level"] == "info"

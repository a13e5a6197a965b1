"""Unit tests for logging configuration."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from kube_runner.logging.config import (
    RETENTION_DAYS,
    _cleanup_old_logs,
    _file_handler,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Any:
    """Restore root handlers replaced by configure_logging after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _age(path: Path, days: int) -> None:
    old_time = (datetime.now() - timedelta(days=days)).timestamp()
    os.utime(path, (old_time, old_time))


@pytest.mark.unit
class TestCleanupOldLogs:
    """Tests for _cleanup_old_logs function."""

    def test_returns_early_when_log_dir_missing(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should not raise for a missing directory."""
        _cleanup_old_logs(tmp_path / "nonexistent")

    def test_deletes_old_log_files(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should delete log files older than RETENTION_DAYS."""
        log_file = tmp_path / "kr.log.1"
        log_file.write_text("old log data")
        _age(log_file, RETENTION_DAYS + 5)

        _cleanup_old_logs(tmp_path)

        assert not log_file.exists()

    def test_keeps_recent_and_foreign_files(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should keep recent logs and files it does not own."""
        recent = tmp_path / "kr.log"
        recent.write_text("recent log data")
        foreign = tmp_path / "other.log"
        foreign.write_text("not ours")
        _age(foreign, RETENTION_DAYS + 5)

        _cleanup_old_logs(tmp_path)

        assert recent.exists()
        assert foreign.exists()

    def test_ignores_os_errors(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should skip files it cannot delete."""
        log_file = tmp_path / "kr.log.1"
        log_file.write_text("data")
        _age(log_file, RETENTION_DAYS + 5)

        with patch.object(Path, "unlink", side_effect=OSError("permission denied")):
            _cleanup_old_logs(tmp_path)

        assert log_file.exists()


@pytest.mark.unit
class TestFileHandler:
    """Tests for _file_handler function."""

    def test_creates_directory_and_handler(self, tmp_path: Path) -> None:
        """_file_handler should create the log dir and a rotating handler."""
        log_dir = tmp_path / "logs"

        handler = _file_handler(log_dir)

        assert isinstance(handler, RotatingFileHandler)
        assert log_dir.exists()
        assert handler is not None
        handler.close()

    def test_unusable_directory(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """_file_handler should report and return None when the dir cannot be made."""
        blocker = tmp_path / "file"
        blocker.write_text("")

        assert _file_handler(blocker / "logs") is None
        assert "file logging disabled" in capsys.readouterr().err


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_console_and_file_handlers(self, tmp_path: Path) -> None:
        """configure_logging should attach a console and a file handler."""
        configure_logging(debug=True, log_dir=tmp_path)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 2
        assert any(isinstance(h, RotatingFileHandler) for h in handlers)

    def test_without_console(self, tmp_path: Path) -> None:
        """configure_logging with console=False should only log to file."""
        configure_logging(console=False, log_dir=tmp_path)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RotatingFileHandler)

    def test_verbose_sets_info_level(self, tmp_path: Path) -> None:
        """configure_logging with verbose=True should set the console to INFO."""
        configure_logging(verbose=True, log_dir=tmp_path)

        console = [
            h for h in logging.getLogger().handlers if not isinstance(h, RotatingFileHandler)
        ]
        assert console[0].level == logging.INFO

    def test_json_output(self, tmp_path: Path) -> None:
        """configure_logging with json_output=True should still configure handlers."""
        configure_logging(json_output=True, log_dir=tmp_path)
        assert logging.getLogger().handlers

    def test_reconfigure_replaces_handlers(self, tmp_path: Path) -> None:
        """Calling configure_logging twice should not duplicate handlers."""
        configure_logging(log_dir=tmp_path)
        configure_logging(log_dir=tmp_path)

        assert len(logging.getLogger().handlers) == 2


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger function."""

    def test_returns_bound_logger(self) -> None:
        """get_logger should return a structlog logger."""
        logger = get_logger("test")
        assert logger is not None

    def test_binds_initial_context(self) -> None:
        """get_logger should bind initial context when provided."""
        logger = get_logger("test", component="tui")
        assert logger is not None

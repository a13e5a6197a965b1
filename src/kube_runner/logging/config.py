"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

LOG_DIR = Path.home() / ".local" / "state" / "kr"
LOG_FILE = LOG_DIR / "kr.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _cleanup_old_logs(log_dir: Path) -> None:
    """Delete kr log files older than RETENTION_DAYS."""
    if not log_dir.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for log_file in log_dir.glob("kr.log*"):
        try:
            if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                log_file.unlink()
        except OSError:
            continue  # Rotated away or not ours to delete


def _file_handler(log_dir: Path) -> logging.Handler | None:
    """Rotating JSON file handler, or ``None`` when the directory is unusable."""
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_old_logs(log_dir)
        handler = RotatingFileHandler(
            log_dir / LOG_FILE.name,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
        )
    except OSError as e:
        print(f"kr: file logging disabled: {e}", file=sys.stderr)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=SHARED_PROCESSORS,
        )
    )
    return handler


def _console_handler(log_level: int, debug: bool, json_output: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=SHARED_PROCESSORS)
    )
    return handler


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    console: bool = True,
    log_dir: Path | None = None,
) -> None:
    """Configure structured logging for the application.

    File logs go to ~/.local/state/kr/kr.log with rotation (10MB, 5
    backups) and 30-day retention. The console handler writes to stderr
    and is left out while the full-screen interface owns the terminal.

    Args:
        verbose: Enable INFO level output.
        debug: Enable DEBUG level output.
        json_output: Render console logs as JSON.
        console: Attach the console handler.
        log_dir: Override the log directory.
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    structlog.configure(
        processors=[
            *SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    if console:
        root_logger.addHandler(_console_handler(log_level, debug, json_output))

    file_handler = _file_handler(log_dir or LOG_DIR)
    if file_handler is not None:
        root_logger.addHandler(file_handler)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a logger with optional initial context bound."""
    logger: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger

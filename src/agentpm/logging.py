"""Structured JSON logging for agentpm.

Writes JSONL to <project>/.agentpm.log with rotation (5MB, 3 backups).
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "agentpm"
_LOG_FILENAME = ".agentpm.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Console handler added by ``enable_verbose``."""


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "command"):
            entry["command"] = record.command
        if hasattr(record, "args_data"):
            entry["args"] = record.args_data
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = record.duration_ms
        if hasattr(record, "error"):
            entry["error"] = record.error
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(project_dir: Path) -> logging.Logger:
    """Set up structured JSON logging to <project_dir>/.agentpm.log.

    Returns a logger that writes JSONL with rotation. Calling again with
    the same directory is a no-op; a different directory replaces the
    file handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = project_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            # Different project: drop the stale handler.
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
        )
        handler.setFormatter(_JsonFormatter())
        handler.setLevel(logging.INFO)
        logger.addHandler(handler)
        if logger.level == logging.NOTSET or logger.level > logging.INFO:
            logger.setLevel(logging.INFO)
    return logger


def enable_verbose() -> logging.Logger:
    """Echo DEBUG and above to stderr (``--verbose``)."""
    logger = logging.getLogger(LOGGER_NAME)
    with _setup_lock:
        if not any(isinstance(h, _StderrHandler) for h in logger.handlers):
            handler = _StderrHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    return logger

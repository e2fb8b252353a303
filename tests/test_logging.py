"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from agentpm.logging import LOGGER_NAME, enable_verbose, setup_logging


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"command": "status", "args_data": {"key": "val"}})
        _flush(logger)
        record = json.loads((tmp_path / ".agentpm.log").read_text().strip())
        assert record["msg"] == "test_message"
        assert record["level"] == "INFO"
        assert record["logger"] == LOGGER_NAME
        assert record["command"] == "status"
        assert record["args"]["key"] == "val"

    def test_optional_fields(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.warning("command_error", extra={"duration_ms": 4.2, "error": "boom"})
        _flush(logger)
        record = json.loads((tmp_path / ".agentpm.log").read_text().strip().split("\n")[-1])
        assert record["duration_ms"] == 4.2
        assert record["error"] == "boom"
        assert "command" not in record

    def test_exception_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            logger.error("tool_error", exc_info=True)
        _flush(logger)
        record = json.loads((tmp_path / ".agentpm.log").read_text().strip().split("\n")[-1])
        assert record["exception"] == "kaput"

    def test_child_loggers_reach_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("agentpm.engine").info("start-epic applied to epic.xml")
        _flush(logger)
        record = json.loads((tmp_path / ".agentpm.log").read_text().strip())
        assert record["logger"] == "agentpm.engine"

    def test_debug_not_written_by_default(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.debug("noisy")
        _flush(logger)
        assert (tmp_path / ".agentpm.log").read_text() == ""

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_project_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        [handler] = logger.handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.baseFilename == os.path.abspath(str(second / ".agentpm.log"))


class TestEnableVerbose:
    def test_adds_single_stderr_handler(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        enable_verbose()
        logger = enable_verbose()
        assert logger.level == logging.DEBUG
        streams = [h for h in logger.handlers if not isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(streams) == 1
        assert isinstance(streams[0], logging.StreamHandler)
        assert streams[0].stream is sys.stderr

    def test_file_stays_at_info(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        enable_verbose()
        logger.debug("only on stderr")
        _flush(logger)
        assert (tmp_path / ".agentpm.log").read_text() == ""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import colorlog
import pytest
from concurrent_log_handler import ConcurrentRotatingFileHandler

from blended_fee.util.blended_logging import initialize_logging, set_log_level
from blended_fee.util.config import SERVICE_NAME


@pytest.fixture(name="root_handlers")
def root_handlers_fixture() -> Iterator[None]:
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers = handlers
    root_logger.setLevel(level)


def test_initialize_logging_to_stdout(tmp_path: Path, root_handlers: None) -> None:
    initialize_logging(SERVICE_NAME, {"log_stdout": True, "log_level": "DEBUG"}, tmp_path)
    handlers = [h for h in logging.getLogger().handlers if isinstance(h, colorlog.StreamHandler)]
    assert len(handlers) == 1
    assert handlers[0].level == logging.DEBUG
    assert not (tmp_path / "log").exists()


def test_initialize_logging_to_file(tmp_path: Path, root_handlers: None) -> None:
    initialize_logging(
        SERVICE_NAME,
        {"log_stdout": False, "log_filename": "log/debug.log", "log_level": "INFO"},
        tmp_path,
    )
    handlers = [h for h in logging.getLogger().handlers if isinstance(h, ConcurrentRotatingFileHandler)]
    assert len(handlers) == 1

    logging.getLogger("blended_fee.test").info("written to the log file")
    handlers[0].flush()
    assert "written to the log file" in (tmp_path / "log" / "debug.log").read_text()


def test_set_log_level_invalid(tmp_path: Path, root_handlers: None) -> None:
    initialize_logging(SERVICE_NAME, {"log_stdout": True}, tmp_path)
    errors = set_log_level("LOUD", SERVICE_NAME)
    assert len(errors) > 0
    assert "Invalid log level 'LOUD'" in errors[0]
    assert all(handler.level == logging.WARNING for handler in logging.getLogger().handlers)

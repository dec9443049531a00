from __future__ import annotations

import logging
import os
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any, Dict, List

import colorlog
from concurrent_log_handler import ConcurrentRotatingFileHandler

from blended_fee import __version__
from blended_fee.util.default_root import path_from_root

default_log_level = "WARNING"

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def record_format(service_name: str, colored: bool = False) -> str:
    level = "%(log_color)s%(levelname)-8s%(reset)s" if colored else "%(levelname)-8s"
    name_width = max(33 - len(service_name), 0)
    return f"%(asctime)s.%(msecs)03d {__version__} {service_name} %(name)-{name_width}s: {level} %(message)s"


def stdout_handler(service_name: str) -> logging.Handler:
    handler = colorlog.StreamHandler()
    handler.setFormatter(
        colorlog.ColoredFormatter(record_format(service_name, colored=True), datefmt=DATE_FORMAT, reset=True)
    )
    return handler


def file_handler(service_name: str, root_path: Path, logging_config: Dict[str, Any]) -> logging.Handler:
    """Size rotated log file, safe to share between processes."""
    log_path = path_from_root(root_path, logging_config.get("log_filename", "log/debug.log"))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = ConcurrentRotatingFileHandler(
        os.fspath(log_path),
        "a",
        maxBytes=int(logging_config.get("log_maxbytesrotation", 50 * 1024 * 1024)),
        backupCount=int(logging_config.get("log_maxfilesrotation", 7)),
        use_gzip=bool(logging_config.get("log_use_gzip", False)),
    )
    handler.setFormatter(logging.Formatter(record_format(service_name), datefmt=DATE_FORMAT))
    return handler


def syslog_handler(service_name: str, logging_config: Dict[str, Any]) -> logging.Handler:
    address = (logging_config.get("log_syslog_host", "localhost"), int(logging_config.get("log_syslog_port", 514)))
    handler = SysLogHandler(address=address)
    handler.setFormatter(logging.Formatter(f"{service_name} %(message)s", datefmt=DATE_FORMAT))
    return handler


def initialize_logging(service_name: str, logging_config: Dict[str, Any], root_path: Path) -> None:
    """
    Attach the configured handlers to the root logger: colored stdout or a rotating
    file under `root_path`, plus syslog when enabled.
    """
    handlers: List[logging.Handler] = []
    if logging_config.get("log_stdout", True):
        handlers.append(stdout_handler(service_name))
    else:
        handlers.append(file_handler(service_name, root_path, logging_config))
    if logging_config.get("log_syslog", False):
        handlers.append(syslog_handler(service_name, logging_config))

    root_logger = logging.getLogger()
    for handler in handlers:
        root_logger.addHandler(handler)

    set_log_level(logging_config.get("log_level", default_log_level), service_name)


def set_log_level(log_level: str, service_name: str) -> List[str]:
    """Apply `log_level` to every root handler, falling back to WARNING. Returns the errors logged."""
    root_logger = logging.getLogger()
    errors: List[str] = []
    for handler in root_logger.handlers:
        try:
            handler.setLevel(log_level)
        except (TypeError, ValueError) as e:
            handler.setLevel(default_log_level)
            errors.append(
                f"Handler {handler}: Invalid log level '{log_level}' for {service_name}. "
                f"Defaulting to: {default_log_level}. Error: {e}"
            )
    for error in errors:
        root_logger.error(error)

    # the root logger itself must let through whatever the most verbose handler accepts
    if len(root_logger.handlers) > 0:
        root_logger.setLevel(min(handler.level for handler in root_logger.handlers))
    if root_logger.level <= logging.DEBUG:
        logging.getLogger("aiohttp.access").setLevel(logging.INFO)

    return errors

"""Logging configuration for hbknowledge with log rotation.

All components log under the ``hbknowledge`` logger namespace. When the MCP
server runs over stdio, stdout carries protocol frames, so logs go to a
rotating file and console output stays off.

Log Rotation Policy:
- Max file size: 10 MB per log file
- Backup count: 5 (keeps hbknowledge.log, hbknowledge.log.1, ..., hbknowledge.log.5)
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = "~/.hbknowledge/logs"
DEFAULT_LOG_FILE = "hbknowledge.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per file
DEFAULT_BACKUP_COUNT = 5
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

ROOT_LOGGER_NAME = "hbknowledge"


def _with_format(handler: logging.Handler, level: int, log_format: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format))
    return handler


def configure_logging(
    log_dir: str = DEFAULT_LOG_DIR,
    log_file: str = DEFAULT_LOG_FILE,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    log_level: int | str = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    console_output: bool = True,
) -> logging.Logger:
    """Route every ``hbknowledge.*`` logger to a rotating file, and optionally stderr.

    The MCP server calls this with ``console_output=False``; the admin CLI
    keeps stderr on so ingestion and review decisions show up in the
    terminal. Each call replaces the handlers installed by the previous one,
    and the package logger stops propagating to the root logger.

    Args:
        log_dir: Directory for log files, usually ``$HBK_DATA_DIR/logs``
        log_file: Log file name inside ``log_dir``
        max_bytes: Size at which the file rotates
        backup_count: Rotated files to keep
        log_level: Level as an int or a name such as ``"debug"``
        log_format: Format string shared by both handlers
        console_output: Also write to stderr (never stdout)

    Returns:
        The ``hbknowledge`` package logger.
    """
    level = getattr(logging, log_level.upper()) if isinstance(log_level, str) else log_level

    log_path = Path(os.path.expanduser(log_dir))
    log_path.mkdir(parents=True, exist_ok=True)
    full_log_path = log_path / log_file

    handlers: list[logging.Handler] = [
        RotatingFileHandler(full_log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console_output:
        handlers.append(logging.StreamHandler(sys.stderr))

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for old in list(package_logger.handlers):
        package_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        package_logger.addHandler(_with_format(handler, level, log_format))
    package_logger.setLevel(level)
    package_logger.propagate = False

    package_logger.info(
        f"Logging to {full_log_path} (rotate at {max_bytes // (1024 * 1024)}MB, "
        f"keep {backup_count}, console={'on' if console_output else 'off'})"
    )
    return package_logger

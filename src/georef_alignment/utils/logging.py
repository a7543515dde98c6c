"""
Logging Utilities

This module sets up logging for the project with a consistent console
format and an optional detailed log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


def _file_formatter() -> logging.Formatter:
    # The file carries thread names because ingestion and publishing run on
    # separate threads.
    return logging.Formatter(
        '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = _file_formatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def set_package_level(level: int, log_file: Optional[str] = None) -> None:
    """
    Apply a logging level to every logger of this package created so far.

    Module loggers are configured at import time with the default level;
    entry points call this once the configuration has been loaded.

    Args:
        level: Logging level to apply
        log_file: Optional log file. Attached once to the package logger, so
            records from every module propagate to it.
    """
    prefix = __name__.split(".")[0]
    if log_file:
        package_logger = logging.getLogger(prefix)
        log_path = Path(log_file).resolve()
        attached = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path
            for h in package_logger.handlers
        )
        if not attached:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(_file_formatter())
            package_logger.addHandler(file_handler)

    for name, candidate in logging.root.manager.loggerDict.items():
        if not isinstance(candidate, logging.Logger):
            continue
        if name == prefix or name.startswith(prefix + "."):
            candidate.setLevel(level)
            for handler in candidate.handlers:
                handler.setLevel(level)

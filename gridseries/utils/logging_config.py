"""
GridSeries - Logging Configuration

This module provides centralized logging configuration for the application.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


APP_MODULES = [
    "gridseries.ingest",
    "gridseries.stores",
    "gridseries.aggregators",
    "gridseries.loaders",
    "gridseries.retention",
    "gridseries.pipeline",
    "gridseries.utils"
]

NOISY_LIBRARIES = [
    "redis",
    "urllib3"
]


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    log_dir: Optional[Path] = Path("data/logs")
) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional log file name (default: gridseries.log)
        log_dir: Directory for log files (None disables the file handler)

    Returns:
        Root logger instance
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # Console handler on stderr; stdout carries NDJSON results
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / (log_file or "gridseries.log")

        # File handler with detailed format and rotation
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        root_logger.addHandler(file_handler)

    configure_module_loggers(level)

    return root_logger


def configure_module_loggers(default_level: int = logging.INFO) -> None:
    """
    Configure logging levels for application modules and quiet third-party ones.

    Args:
        default_level: Default logging level for application modules
    """
    for module in APP_MODULES:
        logging.getLogger(module).setLevel(default_level)

    for lib in NOISY_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)


class LogContext:
    """
    Context manager for temporary logging level changes.

    Useful for verbose debugging of a single aggregation run.
    """

    def __init__(self, logger_name: str, level: int):
        self.logger = logging.getLogger(logger_name)
        self.new_level = level
        self.original_level: int = logging.INFO

    def __enter__(self):
        self.original_level = self.logger.level
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.setLevel(self.original_level)
        return False

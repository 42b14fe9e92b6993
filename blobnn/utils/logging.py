"""
Logging configuration for the blobnn pipeline.

Usage:
    from blobnn.utils.logging import get_logger, setup_logging

    # Module-level logger
    logger = get_logger(__name__)

    # Once, at process start
    setup_logging(level="INFO", log_file="/path/to/output/blobnn.log")

    logger.info("Processing uid %d", uid)
    logger.warning("Upstream detection failed for uid %d", uid)
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to log levels for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so file handlers sharing the record stay uncolored
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )
        return super().format(record)


_loggers: dict[str, logging.Logger] = {}
_initialized = False

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return _loggers[name]


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    colored: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger for a pipeline run.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Explicit path to a log file (opened in append mode)
        console: Whether to log to stdout
        colored: Whether to color console output when stdout is a TTY
        format_string: Custom format string

    Returns:
        Root logger instance
    """
    global _initialized

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        format_string = DEFAULT_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if _initialized:
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        if colored and sys.stdout.isatty():
            console_handler.setFormatter(ColoredFormatter(format_string))
        else:
            console_handler.setFormatter(logging.Formatter(format_string))
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(format_string))
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to file: {log_path}")

    _initialized = True
    return root_logger


def log_parameters(logger: logging.Logger, params: dict, title: str = "Parameters") -> None:
    """
    Log a dictionary of run parameters as an aligned block.

    Args:
        logger: Logger instance
        params: Parameters to log
        title: Title for the block
    """
    logger.info(f"{'='*50}")
    logger.info(f"{title}")
    logger.info(f"{'='*50}")

    for key, value in params.items():
        if isinstance(value, (list, tuple)) and len(value) > 5:
            logger.info(f"  {key}: [{len(value)} items]")
        elif isinstance(value, dict) and len(value) > 5:
            logger.info(f"  {key}: {{{len(value)} keys}}")
        else:
            logger.info(f"  {key}: {value}")

    logger.info(f"{'='*50}")


def format_duration(duration_seconds: float) -> str:
    """Human-readable duration (seconds, minutes or hours)."""
    if duration_seconds >= 3600:
        return f"{duration_seconds/3600:.1f} hours"
    if duration_seconds >= 60:
        return f"{duration_seconds/60:.1f} minutes"
    return f"{duration_seconds:.1f} seconds"


def log_processing_end(
    logger: logging.Logger,
    operation: str,
    duration_seconds: Optional[float] = None,
    **results
) -> None:
    """Log the end of a processing operation with its results."""
    if duration_seconds is not None:
        logger.info(f"Completed: {operation} in {format_duration(duration_seconds)}")
    else:
        logger.info(f"Completed: {operation}")

    for key, value in results.items():
        logger.info(f"  {key}: {value}")


class ProcessingTimer:
    """Context manager for timing an operation.

    Results registered with ``add_result`` while the block runs are logged
    together with the duration on successful exit.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None
        self.results: dict = {}

    def add_result(self, key: str, value) -> None:
        self.results[key] = value

    def __enter__(self):
        self.start_time = time.time()
        self.logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time
        if exc_type is not None:
            self.logger.error(f"Failed: {self.operation} after {self.duration:.1f}s - {exc_val}")
        else:
            log_processing_end(self.logger, self.operation, self.duration, **self.results)
        return False

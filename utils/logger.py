"""
Logging utilities for Pantry Planner.

Provides structured logging setup with proper formatting and file rotation,
plus a timed operation context that tallies the records a claim workflow
writes.
"""

import logging
import logging.handlers
import time
from pathlib import Path
from typing import Dict, Optional
import sys

from .config import get_config


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up application logging with both console and file output.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Uses config if not provided.
        log_file: Log file path. Uses config if not provided.

    Returns:
        Configured logger instance
    """
    config = get_config()

    # Use provided values or fall back to config
    log_level = log_level or config.log_level
    log_file = log_file or config.log_file

    # Create logs directory if needed
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    logger = logging.getLogger("pantry_planner")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear any existing handlers
    logger.handlers.clear()

    # Create formatters
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5
    )
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(getattr(logging, log_level.upper()))
    logger.addHandler(file_handler)

    # .env parsing warnings only
    logging.getLogger("dotenv").setLevel(logging.WARNING)

    logger.info(f"Logging initialized - Level: {log_level}, File: {log_file}, Database: {config.database_path}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(f"pantry_planner.{name}")


class ContextLogger:
    """
    Context manager for logging a claim workflow with timing.

    Messages logged through it are prefixed with the operation name. Counts
    passed to tally() (claimed, released, list_added, ...) are appended to
    the closing line, including when the operation fails partway.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time = None
        self.counts: Dict[str, int] = {}

    def __enter__(self):
        self.start_time = time.time()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time

        if exc_type is None:
            self.logger.log(self.level, f"Completed: {self.operation} ({duration:.2f}s){self._summary()}")
        else:
            # Writes counted so far stay in place
            self.logger.error(f"Failed: {self.operation} ({duration:.2f}s){self._summary()} - {exc_val}")

    def tally(self, key: str, amount: int = 1):
        """Count records written under key"""
        if amount:
            self.counts[key] = self.counts.get(key, 0) + amount

    def _summary(self) -> str:
        if not self.counts:
            return ""
        return " [" + ", ".join(f"{key}={count}" for key, count in sorted(self.counts.items())) + "]"

    def info(self, message: str):
        """Log info message within context"""
        self.logger.info(f"[{self.operation}] {message}")

    def warning(self, message: str):
        """Log warning message within context"""
        self.logger.warning(f"[{self.operation}] {message}")


def log_operation(logger: logging.Logger, operation: str, level: int = logging.INFO) -> ContextLogger:
    """Create a context logger for an operation"""
    return ContextLogger(logger, operation, level)

"""Centralized logging configuration for booking sync.

This module provides structured logging with context fields for mailbox sync
and booking extraction. Logs are written to both console (for Docker logs)
and rotating files.

Usage:
    from mailsync.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Starting sync", extra={'sync_id': sync_id, 'user_id': user_id})
"""

import logging
import os
from logging.handlers import RotatingFileHandler

# Log directory from environment or default
LOG_DIR = os.getenv("LOG_DIR", "logs")

SYNC_LOG_FILE = "booking_sync.log"
ERROR_LOG_FILE = "booking_sync_errors.log"


class StructuredFormatter(logging.Formatter):
    """Custom formatter that adds context fields to log records.

    Supports the following context fields via extra={} parameter:
    - sync_id: Booking sync run ID
    - user_id: User whose mailbox is synced
    - provider: Booking provider (airbnb, united, ...)
    - parser: Extractor that handled the email
    """

    def format(self, record):
        """Format log record with context fields."""
        record.sync_id = getattr(record, "sync_id", None)
        record.user_id = getattr(record, "user_id", None)
        record.provider = getattr(record, "provider", None)
        record.parser = getattr(record, "parser", None)

        return super().format(record)


def _propagate_enabled() -> bool:
    return os.getenv("LOG_PROPAGATE", "false").lower() in ("true", "1", "yes")


def get_logger(name: str) -> logging.Logger:
    """Get configured logger for booking sync operations.

    Creates a logger with:
    - Console handler for Docker logs (INFO level)
    - Rotating file handler for all logs (DEBUG level)
    - Separate error file handler (ERROR level)

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logging.Logger instance
    """
    logger = logging.getLogger(name)

    # Skip if already configured (prevents duplicate handlers)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = _propagate_enabled()

    log_dir = os.getenv("LOG_DIR", LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)

    # ========================================
    # Console Handler (for Docker logs)
    # ========================================
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(
        StructuredFormatter("[%(levelname)s] [sync:%(sync_id)s] %(message)s")
    )
    logger.addHandler(console)

    file_format = (
        "[%(asctime)s] [%(levelname)s] [%(name)s] "
        "[sync:%(sync_id)s user:%(user_id)s provider:%(provider)s parser:%(parser)s] "
        "%(message)s"
    )

    # ========================================
    # File Handler (rotating, all levels)
    # ========================================
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, SYNC_LOG_FILE),
        maxBytes=10 * 1024 * 1024,  # 10MB per file
        backupCount=30,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(StructuredFormatter(file_format))
    logger.addHandler(file_handler)

    # ========================================
    # Error File Handler (errors only)
    # ========================================
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, ERROR_LOG_FILE),
        maxBytes=10 * 1024 * 1024,
        backupCount=30,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(StructuredFormatter(file_format))
    logger.addHandler(error_handler)

    return logger

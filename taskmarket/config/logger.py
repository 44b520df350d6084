"""
Logger configuration for the TaskMarket Admin API using Loguru.

This module provides the logging setup shared by the whole service:
- Colored console output plus rotating file handlers
- Structured request records (serialized to requests.log as JSON lines)
- A dedicated audit trail file for AUDIT records
- Performance records for timed service calls
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from taskmarket.config.settings import settings


class LoguruConfig:
    """Loguru configuration class for the application."""

    def __init__(self, app_name: str = "taskmarket-admin", logs_dir: str = "logs"):
        self.app_name = app_name
        self.logs_dir = Path(logs_dir)

    def setup_logger(self, log_level: str = "INFO", to_files: bool = True) -> None:
        """Configure Loguru logger for the application."""

        # Remove default handler
        logger.remove()

        # Console handler with colors and formatting
        logger.add(
            sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[request_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

        if not to_files:
            return

        self.logs_dir.mkdir(parents=True, exist_ok=True)

        # General application logs
        logger.add(
            self.logs_dir / "app.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[request_id]} | {name}:{function}:{line} - {message}",
            level="DEBUG",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
            backtrace=True,
            diagnose=False,
        )

        # Error logs only
        logger.add(
            self.logs_dir / "errors.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[request_id]} | {name}:{function}:{line} - {message}",
            level="ERROR",
            rotation="5 MB",
            retention="30 days",
            compression="zip",
            encoding="utf-8",
            backtrace=True,
            diagnose=False,
        )

        # Request logs, one JSON object per line with the structured fields
        logger.add(
            self.logs_dir / "requests.log",
            level="INFO",
            rotation="20 MB",
            retention="14 days",
            compression="zip",
            encoding="utf-8",
            serialize=True,
            filter=lambda record: record["message"].startswith("REQUEST"),
        )

        # Audit trail
        logger.add(
            self.logs_dir / "audit.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[request_id]} | {message}",
            level="INFO",
            rotation="20 MB",
            retention="90 days",
            compression="zip",
            encoding="utf-8",
            filter=lambda record: record["message"].startswith("AUDIT"),
        )

        # Performance logs
        logger.add(
            self.logs_dir / "performance.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="INFO",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
            filter=lambda record: record["message"].startswith("PERFORMANCE"),
        )


def log_request_start(record: Dict[str, Any]) -> None:
    """Emit the "started" record for a request."""
    logger.bind(event="request_started", **record).info(
        "REQUEST START: {} {}", record.get("method"), record.get("path")
    )


def log_request_end(record: Dict[str, Any]) -> None:
    """Emit the "completed" record for a request."""
    duration = record.get("duration")
    logger.bind(event="request_completed", **record).info(
        "REQUEST END: {} {} - {} ({:.4f}s)",
        record.get("method"),
        record.get("path"),
        record.get("status_code"),
        duration if duration is not None else 0.0,
    )


def log_request_error(record: Dict[str, Any], error: BaseException) -> None:
    """Log an exception that escaped the application while serving a request."""
    logger.bind(event="request_failed", error_type=type(error).__name__, **record).error(
        "REQUEST ERROR: {} {} - {}", record.get("method"), record.get("path"), error
    )


def log_performance(operation: str, duration: float, **kwargs: Any) -> None:
    """Log performance metrics using Loguru."""
    logger.bind(event="performance", operation=operation, duration=duration, **kwargs).info(
        "PERFORMANCE: {} completed in {:.4f}s", operation, duration
    )


# Records emitted outside a request still need the request_id key for the formats above
logger.configure(extra={"request_id": "-"})

# Initialize Loguru configuration
loguru_config = LoguruConfig(app_name=settings.APP_NAME, logs_dir=settings.LOG_DIR)
loguru_config.setup_logger(log_level=settings.LOG_LEVEL, to_files=settings.LOG_TO_FILE)

# Export logger for use in other modules
app_logger = logger

"""Logging configuration with rotation support."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import json_logging

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty below WARNING.
QUIET_LOGGERS = ("asyncio", "aiohttp", "httpx", "httpcore", "uvicorn.access")

# json_logging refuses a second init in the same process.
_json_logging_enabled = False


def _enable_json_logging() -> None:
    global _json_logging_enabled
    if not _json_logging_enabled:
        json_logging.init_non_web(enable_json=True)
        _json_logging_enabled = True


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: str = "text",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Setup logging with rotation support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file; stdout only when unset
        log_format: Log format (json or text)
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_format == "json":
        _enable_json_logging()
        formatter: logging.Formatter = json_logging.JSONLogFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger

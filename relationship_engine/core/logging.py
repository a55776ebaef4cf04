"""
Logging configuration and utilities.

This module provides centralized logging configuration for the application.
All loggers write to stdout for container-friendly logging. With
LOG_FORMAT=json every record is emitted as one JSON object per line so the
discovery runs can be followed in a log aggregator.
"""

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

from .config import settings

TEXT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


class EngineJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always carries an ISO timestamp and an upper-case level."""

    def add_fields(self, log_record, record, message_dict):
        super(EngineJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname


def build_formatter(log_format: str) -> logging.Formatter:
    """Return the stdout formatter for "text" or "json"."""
    if log_format.lower() == "json":
        return EngineJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    return logging.Formatter(TEXT_FORMAT)


_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(build_formatter(settings.log_format))

# Configure base logging for the entire application
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    handlers=[_handler],
)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance for a module or component.

    Args:
        name: Logger name, typically __name__ or module name.
              Examples: "main", "api.relationships", "services.discovery"

    Returns:
        logging.Logger: Configured logger instance

    Example:
        ```python
        from .core.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Discovery started")
        logger.error("Sampling failed", exc_info=True)
        ```
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger

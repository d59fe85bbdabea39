"""
Structured logging setup.
"""
import logging
import sys
import json
from datetime import datetime, timezone

from picksmart.config import config

SERVICE_NAME = "picksmart-stores"


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "environment": config.ENVIRONMENT,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed as extra={"extra": {...}}
        if isinstance(getattr(record, "extra", None), dict):
            log_data.update(record.extra)

        return json.dumps(log_data, default=str)


def setup_logger():
    """Configure structured logging."""
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

    # Console handler with JSON formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())

    # Remove existing handlers
    logger.handlers.clear()

    # Add our handler
    logger.addHandler(console_handler)

    return logger


# Global logger instance
logger = setup_logger()

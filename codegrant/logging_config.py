"""
Logging configuration.

Configures standard Python logging to stdout with JSON formatting so that
structured context passed through ``extra={...}`` ends up as fields.
"""

import json
import logging
import os
from datetime import UTC, datetime


# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """
    Custom JSON log formatter.

    Emits one JSON object per record with timestamp, severity, logger name,
    message and any structured fields passed via ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A JSON string representing the log record.
        """
        log_object = {
            "timestamp": datetime.now(UTC).isoformat(),
            "severity": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_object[key] = value

        if record.exc_info:
            log_object["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_object, default=str)


def setup_global_logging() -> None:
    """
    Configure global logging.

    Installs a single stdout handler with JsonFormatter on the root logger.
    The level comes from LOG_LEVEL (default INFO).
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    # Remove default handlers to avoid duplicate logs
    for h in root_logger.handlers[:]:
        if h is not handler:
            root_logger.removeHandler(h)

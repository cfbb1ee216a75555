"""
Structured logging for the visitor trust service

JSON-formatted logs with visitor/session context for ELK ingestion.
"""

import json
import logging
from typing import Optional

from ..config import Settings, get_settings

# Fields copied from `extra=` into the JSON document when present
CONTEXT_FIELDS = (
    "session_id",
    "visitor_id",
    "user_type",
    "risk_level",
    "total_score",
    "confidence",
    "scorer",
    "operation",
)


class JSONFormatter(logging.Formatter):
    """Custom formatter to output logs in JSON format"""

    def __init__(self, service: str = "visitor-trust", environment: str = "development"):
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "@timestamp": self.formatTime(record, self.datefmt),
            "service": self.service,
            "environment": self.environment,
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack_trace": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Configure the package logger

    Args:
        settings: settings to read LOG_LEVEL/LOG_FORMAT from (defaults to get_settings())

    Returns:
        logging.Logger: the configured `visitor_trust` logger
    """
    settings = settings or get_settings()

    logger = logging.getLogger("visitor_trust")
    logger.setLevel(settings.LOG_LEVEL.upper())

    handler = logging.StreamHandler()
    if settings.LOG_FORMAT == "json":
        handler.setFormatter(
            JSONFormatter(service=settings.APP_NAME, environment=settings.ENV)
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    # Replace handlers so repeated calls do not duplicate output
    logger.handlers = [handler]
    logger.propagate = False
    return logger

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Uvicorn logging configuration for structured JSON logs."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict


class JSONFormatter(logging.Formatter):
    """Formatter that renders uvicorn records in the shorty_logging JSON shape."""

    def __init__(self, logger_name: str = "uvicorn"):
        super().__init__()
        self.logger_name = logger_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": self.logger_name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra") and record.extra:
            log_entry["extra"] = record.extra

        return json.dumps(log_entry, default=str)


def create_uvicorn_log_config(service_name: str, log_level: str = "INFO") -> Dict[str, Any]:
    """Create a uvicorn ``log_config`` dictionary with structured JSON output.

    Access logs are emitted at DEBUG so health checks do not flood the logs.

    Args:
        service_name: Name of the service for log identification
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Dictionary compatible with uvicorn's log_config parameter

    Example:
        >>> log_config = create_uvicorn_log_config("auth", "INFO")
        >>> uvicorn.run(app, host="0.0.0.0", port=8080, log_config=log_config)
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JSONFormatter,
                "logger_name": service_name,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "DEBUG",
                "propagate": False,
            },
        },
    }

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Shorty Logging Adapter.

Structured JSON logging shared by the Shorty identity service and its
libraries. Every message is written as one JSON object per line on stdout
and mirrored into the standard library ``logging`` tree so test harnesses
(``caplog``) can capture it.

Example:
    >>> from shorty_logging import create_logger
    >>> logger = create_logger(logger_type="stdout", level="INFO", name="auth")
    >>> logger.info("Provider loaded", provider_id=3, slug="okta")
    >>>
    >>> # Silent logger for tests
    >>> test_logger = create_logger(logger_type="silent")
    >>> test_logger.warning("Discovery failed")
    >>> test_logger.has_log("Discovery failed", level="WARNING")
    True
"""

__version__ = "0.1.0"

from .factory import create_logger
from .logger import Logger
from .silent_logger import SilentLogger
from .stdout_logger import StdoutLogger
from .uvicorn_config import create_uvicorn_log_config

__all__ = [
    "__version__",
    "Logger",
    "SilentLogger",
    "StdoutLogger",
    "create_logger",
    "create_uvicorn_log_config",
]

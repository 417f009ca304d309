# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Abstract logger interface."""

from abc import ABC, abstractmethod
from typing import Any


class Logger(ABC):
    """Abstract base class for loggers.

    Structured fields are passed as keyword arguments and end up under the
    ``extra`` key of the emitted record.
    """

    @abstractmethod
    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info-level message."""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning-level message."""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs: Any) -> None:
        """Log an error-level message."""
        pass

    @abstractmethod
    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug-level message."""
        pass

    @abstractmethod
    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error-level message from inside an exception handler.

        Implementations attach the active exception's traceback.
        """
        pass

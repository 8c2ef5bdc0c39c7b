"""Helpers for best-effort steps whose failures must not end the run."""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def log_and_ignore(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """
    Log an error and ignore it (don't re-raise).

    Use for non-critical errors that should not interrupt the flow.

    Args:
        error: Exception to log
        message: Context message to log
        logger_instance: Logger to use (defaults to module logger)
        level: Log level (default: WARNING)
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")


class ErrorContext:
    """
    Context manager that logs an error and optionally suppresses it.

    Usage:
        with ErrorContext("installing signal handlers", raise_on_error=False):
            install_signal_handlers(flag)
    """

    def __init__(
        self,
        operation: str,
        *,
        raise_on_error: bool = True,
        default_value: Any = None,
        logger_instance: Optional[logging.Logger] = None,
        log_level: int = logging.ERROR,
    ):
        self.operation = operation
        self.raise_on_error = raise_on_error
        self.default_value = default_value
        self.logger = logger_instance or logger
        self.log_level = log_level
        self.error: Optional[Exception] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return False

        # Never swallow interpreter exits or Ctrl-C
        if not issubclass(exc_type, Exception):
            return False

        self.error = exc_val
        self.logger.log(self.log_level, f"Error during {self.operation}: {exc_val}")
        return not self.raise_on_error

    def get_result(self, result: Any = None) -> Any:
        """Result if no error occurred, otherwise the default value."""
        if self.error is not None:
            return self.default_value
        return result

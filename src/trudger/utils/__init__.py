"""Shared utilities for trudger."""

from .error_handling import ErrorContext, log_and_ignore
from .rich_logging import (
    ContextLogger,
    log_transition,
    sanitize_log_value,
    setup_logging,
)
from .subprocess_utils import (
    CommandEnv,
    CommandResult,
    CommandRunner,
    ShellCommandRunner,
    run_command,
)
from .validators import split_manual_task_values, validate_task_id

__all__ = [
    # Error handling
    "ErrorContext",
    "log_and_ignore",
    # Logging
    "ContextLogger",
    "log_transition",
    "sanitize_log_value",
    "setup_logging",
    # Subprocess utilities
    "CommandEnv",
    "CommandResult",
    "CommandRunner",
    "ShellCommandRunner",
    "run_command",
    # Validation
    "split_manual_task_values",
    "validate_task_id",
]

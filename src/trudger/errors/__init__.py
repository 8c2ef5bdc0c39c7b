"""Error types and user-facing translation of run outcomes."""

from .exceptions import (
    CommandFailedError,
    CommandSpawnError,
    ConfigError,
    Quit,
    TrudgerError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "CommandFailedError",
    "CommandSpawnError",
    "ConfigError",
    "Quit",
    "TrudgerError",
    "ErrorTranslator",
    "UserFriendlyError",
]

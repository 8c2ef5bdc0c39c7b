"""Exception hierarchy shared by the run loop and its collaborators."""

from typing import Optional


class TrudgerError(Exception):
    """Base class for errors raised by trudger components."""


class ConfigError(TrudgerError):
    """Raised when the configuration file is missing, malformed or invalid."""


class CommandSpawnError(TrudgerError):
    """Raised when a configured shell command could not be started."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to run command '{command}': {reason}")


class CommandFailedError(TrudgerError):
    """Raised when a required command exits nonzero or violates its output contract."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message)


class Quit(Exception):
    """Structured termination of a run.

    Every exit from the run loop is expressed as a ``Quit`` carrying the
    process exit code and a short machine-parsable reason token such as
    ``task_not_ready:tr-1`` or ``interrupted``.
    """

    def __init__(self, code: int, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"{reason} (exit {code})")

    @property
    def exit_status(self) -> int:
        """Process exit status (low 8 bits, same wrapping as ``exit(2)``)."""
        return self.code & 0xFF

    @property
    def is_error(self) -> bool:
        return self.code != 0

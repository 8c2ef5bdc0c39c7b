"""Console logging with task context, plus the machine-readable transition log."""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

TRANSITIONS_LOGGER_NAME = "trudger.transitions"

_console_logger = logging.getLogger("trudger.logging")


def sanitize_log_value(value: str) -> str:
    """Escape newlines, carriage returns and tabs so a value stays on one line."""
    return value.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def transitions_logger() -> logging.Logger:
    logger = logging.getLogger(TRANSITIONS_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def log_transition(message: str) -> None:
    """Record one state transition (written to log_path, mirrored in all_logs scope)."""
    transitions_logger().info(message)


class TransitionFormatter(logging.Formatter):
    """``YYYY-MM-DDTHH:MM:SSZ <sanitized message>`` in UTC."""

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created))
        return f"{ts} {sanitize_log_value(record.getMessage())}"


class TransitionFileHandler(logging.Handler):
    """Append transition lines to a file.

    The file is opened per line so external rotation/truncation is picked up.
    On the first I/O error the handler warns once and stops writing; the run
    itself continues.
    """

    def __init__(self, path: Path):
        super().__init__(level=logging.INFO)
        self.path = Path(path)
        self.write_disabled = False
        self.setFormatter(TransitionFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        if self.write_disabled:
            return
        line = self.format(record) + "\n"
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            self.write_disabled = True
            _console_logger.warning(
                f"Transition logging disabled log_path={self.path} io_error={e}"
            )


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter with task/phase context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        task_context = f"[{record.task_id}] " if hasattr(record, "task_id") else ""
        phase_context = f"[{record.phase}] " if hasattr(record, "phase") else ""

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        return (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{phase_context}{task_context}{record.getMessage()}"
        )


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that tags messages with the task being worked on."""

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})
        self.current_task_id: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_task_context(self, task_id: Optional[str] = None, phase: Optional[str] = None):
        if task_id:
            self.current_task_id = task_id
        if phase is not None:
            self.current_phase = phase

    def clear_context(self):
        self.current_task_id = None
        self.current_phase = None

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})

        if self.current_task_id:
            extra["task_id"] = self.current_task_id
        if self.current_phase:
            extra["phase"] = self.current_phase

        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    log_path: Optional[Path] = None,
    log_level: str = "INFO",
    use_colors: Optional[bool] = None,
) -> ContextLogger:
    """
    Configure console logging and the transition log.

    Args:
        log_path: File receiving transition lines (None disables the file)
        log_level: Console logging level (DEBUG, INFO, WARNING, ERROR)
        use_colors: Force ANSI colors on/off (default: only when stderr is a tty)

    Returns:
        ContextLogger for run loop messages
    """
    if use_colors is None:
        use_colors = sys.stderr.isatty() if hasattr(sys.stderr, "isatty") else False

    root = logging.getLogger("trudger")
    root.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ConsoleFormatter(use_colors=use_colors))
    root.addHandler(console_handler)

    attach_transition_file(log_path)

    return ContextLogger(logging.getLogger("trudger.run"))


def attach_transition_file(log_path: Optional[Path]) -> Optional[TransitionFileHandler]:
    """Send transition lines to ``log_path``, replacing any previous transition file."""
    transitions = transitions_logger()
    for handler in transitions.handlers[:]:
        if isinstance(handler, TransitionFileHandler):
            detach_transition_file(handler)

    if log_path is None:
        return None
    handler = TransitionFileHandler(log_path)
    transitions.addHandler(handler)
    return handler


def detach_transition_file(handler: Optional[TransitionFileHandler]) -> None:
    if handler is None:
        return
    transitions_logger().removeHandler(handler)
    handler.close()

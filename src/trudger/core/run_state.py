"""Mutable state for one trudger run."""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from ..errors import Quit
from ..utils.rich_logging import ContextLogger, log_transition, sanitize_log_value
from ..utils.subprocess_utils import CommandRunner
from .config import DEFAULT_SKIP_NOT_READY_LIMIT, TrudgerConfig
from .task import TaskId, TaskStatus

if TYPE_CHECKING:
    from .notifications import NotificationDispatcher


def make_quit(reason: str, code: int) -> Quit:
    """Build the Quit for a loop exit and record ``quit reason=...``."""
    logged = sanitize_log_value(reason) if reason.strip() else "unknown"
    log_transition(f"quit reason={logged}")
    return Quit(code, reason)


def _default_console() -> ContextLogger:
    return ContextLogger(logging.getLogger("trudger.run"))


@dataclass
class RunState:
    """Everything the run loop and its helpers share for the life of the process."""
    config: TrudgerConfig
    config_path: Path
    runner: CommandRunner
    prompt_solve: str = ""
    prompt_review: str = ""
    invocation_folder: str = ""

    # Processed, in order, before any tracker-driven selection
    manual_tasks: List[TaskId] = field(default_factory=list)
    # Append-only, in completion order
    completed_tasks: List[TaskId] = field(default_factory=list)
    needs_human_tasks: List[TaskId] = field(default_factory=list)

    current_task_id: Optional[TaskId] = None
    current_task_show: Optional[str] = None
    current_task_status: Optional[TaskStatus] = None

    run_started_at: float = field(default_factory=time.monotonic)
    current_task_started_at: Optional[float] = None
    run_exit_code: int = 0

    skip_not_ready_limit: int = DEFAULT_SKIP_NOT_READY_LIMIT
    interrupt: threading.Event = field(default_factory=threading.Event)
    notifier: Optional["NotificationDispatcher"] = None
    console: ContextLogger = field(default_factory=_default_console)

    @property
    def task_token(self) -> str:
        return str(self.current_task_id) if self.current_task_id else "none"

    def begin_task(self, task_id: TaskId) -> None:
        self.current_task_id = task_id
        self.current_task_show = None
        self.current_task_status = None
        self.current_task_started_at = time.monotonic()
        self.console.set_task_context(task_id=str(task_id))

    def clear_current_task(self) -> None:
        self.current_task_id = None
        self.current_task_show = None
        self.current_task_status = None
        self.current_task_started_at = None
        self.console.clear_context()

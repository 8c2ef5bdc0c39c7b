"""Core models, configuration and the task execution loop."""

from .task import Phase, StatusKind, TaskId, TaskStatus
from .config import NotificationScope, TrudgerConfig, load_config, validate_config
from .run_state import RunState, make_quit
from .notifications import NotificationDispatcher, NotificationEvent
from .run_loop import finish_current_task_context, reset_task_on_exit, run_loop

__all__ = [
    "Phase",
    "StatusKind",
    "TaskId",
    "TaskStatus",
    "NotificationScope",
    "TrudgerConfig",
    "load_config",
    "validate_config",
    "RunState",
    "make_quit",
    "NotificationDispatcher",
    "NotificationEvent",
    "finish_current_task_context",
    "reset_task_on_exit",
    "run_loop",
]

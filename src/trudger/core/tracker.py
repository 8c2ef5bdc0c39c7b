"""Tracker, hook and agent invocations built on the command runner.

Each operation runs one configured command with the TRUDGER_* environment
derived from the run state. Nonzero exits of required commands raise
``CommandFailedError``; spawn failures propagate as ``CommandSpawnError``.
"""

import logging
from typing import Optional, Sequence

from ..errors import CommandFailedError
from ..utils.rich_logging import log_transition, sanitize_log_value
from ..utils.subprocess_utils import CommandEnv, CommandResult
from .run_state import RunState
from .task import StatusKind, TaskId, TaskStatus

logger = logging.getLogger(__name__)

RESUME_ARGS = ("resume", "--last")


def join_task_ids(tasks: Sequence[TaskId]) -> Optional[str]:
    """Comma-joined ids, or None when there are none (variable is then unset)."""
    if not tasks:
        return None
    return ",".join(str(task) for task in tasks)


def build_command_env(
    state: RunState,
    task_id: Optional[TaskId] = None,
    *,
    prompt: Optional[str] = None,
    review_prompt: Optional[str] = None,
    target_status: Optional[str] = None,
) -> CommandEnv:
    """TRUDGER_* environment for a command; task_id defaults to the current task."""
    effective_task = task_id if task_id is not None else state.current_task_id
    return CommandEnv(
        config_path=str(state.config_path),
        task_id=str(effective_task) if effective_task is not None else None,
        task_show=state.current_task_show,
        task_status=str(state.current_task_status) if state.current_task_status else None,
        target_status=target_status,
        prompt=prompt,
        review_prompt=review_prompt,
        completed=join_task_ids(state.completed_tasks),
        needs_human=join_task_ids(state.needs_human_tasks),
    )


def _run(
    state: RunState,
    command: str,
    label: str,
    task_id: Optional[TaskId],
    *,
    args: Sequence[str] = (),
    capture: bool = True,
    env: Optional[CommandEnv] = None,
) -> CommandResult:
    return state.runner.run(
        command,
        label=label,
        env=env or build_command_env(state, task_id),
        task_token=str(task_id) if task_id is not None else "none",
        args=list(args),
        capture=capture,
    )


def run_next_task(state: RunState) -> CommandResult:
    """Run commands.next_task; exit code interpretation is left to the selector."""
    return _run(state, state.config.next_task_command, "next-task", None)


def run_task_show(state: RunState, task_id: TaskId) -> str:
    """Capture the task's show text into ``state.current_task_show``."""
    state.current_task_show = None
    result = _run(state, state.config.commands.task_show, "task", task_id)
    if result.exit_code != 0:
        raise CommandFailedError(
            f"task_show failed with exit code {result.exit_code}", result.exit_code
        )
    state.current_task_show = result.stdout
    return result.stdout


def query_task_status(state: RunState, task_id: TaskId) -> Optional[TaskStatus]:
    """Run commands.task_status and parse its first token without touching run state."""
    result = _run(state, state.config.commands.task_status, "task", task_id)
    if result.exit_code != 0:
        raise CommandFailedError(
            f"task_status failed with exit code {result.exit_code}", result.exit_code
        )
    return TaskStatus.from_output(result.stdout)


def fetch_task_status(state: RunState, task_id: TaskId) -> Optional[TaskStatus]:
    """
    Refresh ``state.current_task_status`` from the tracker.

    Unknown tokens are logged as ``unknown_task_status`` and returned as-is;
    callers treat them as not ready. None means the tracker printed nothing.
    """
    state.current_task_status = None
    status = query_task_status(state, task_id)
    if status is not None and status.is_unknown():
        log_transition(
            f"unknown_task_status task={task_id} status={sanitize_log_value(status.raw)}"
        )
    state.current_task_status = status
    return status


def update_task_status(state: RunState, task_id: TaskId, kind: StatusKind) -> None:
    status = TaskStatus.of(kind)
    result = _run(
        state,
        state.config.commands.task_update_in_progress,
        "task",
        task_id,
        args=["--status", status.raw],
        capture=False,
        env=build_command_env(state, task_id, target_status=status.raw),
    )
    if result.exit_code != 0:
        raise CommandFailedError(
            f"task_update_in_progress failed to set status {status.raw} "
            f"(exit code {result.exit_code})",
            result.exit_code,
        )


def mark_in_progress(state: RunState, task_id: TaskId) -> None:
    update_task_status(state, task_id, StatusKind.IN_PROGRESS)


def reset_task(state: RunState, task_id: TaskId) -> None:
    result = _run(state, state.config.commands.reset_task, "reset_task", task_id, capture=False)
    if result.exit_code != 0:
        raise CommandFailedError(
            f"reset_task failed with exit code {result.exit_code}", result.exit_code
        )


def run_hook(state: RunState, hook_command: str, task_id: TaskId, hook_name: str) -> None:
    """Run a completion/escalation hook; a blank command is a no-op."""
    if not hook_command.strip():
        return
    result = _run(state, hook_command, hook_name, task_id, capture=False)
    if result.exit_code != 0:
        raise CommandFailedError(
            f"hook {hook_name} failed with exit code {result.exit_code}", result.exit_code
        )


def run_agent_solve(state: RunState, args: Sequence[str] = ()) -> None:
    result = _run(
        state,
        state.config.agent_command,
        "agent_solve",
        None,
        args=args,
        capture=False,
        env=build_command_env(state, prompt=state.prompt_solve),
    )
    if result.exit_code != 0:
        raise CommandFailedError(
            f"agent_solve failed with exit code {result.exit_code}", result.exit_code
        )


def run_agent_review(state: RunState) -> None:
    result = _run(
        state,
        state.config.agent_review_command,
        "agent_review",
        None,
        args=RESUME_ARGS,
        capture=False,
        env=build_command_env(state, review_prompt=state.prompt_review),
    )
    if result.exit_code != 0:
        raise CommandFailedError(
            f"agent_review failed with exit code {result.exit_code}", result.exit_code
        )

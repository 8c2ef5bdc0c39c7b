"""Task selection with readiness gating.

Manual task ids (``-t``) are all pre-checked before any work starts and then
consumed in order. After that, tasks come from ``commands.next_task``; not-ready
candidates are skipped up to the skip limit.
"""

from typing import Optional

from ..errors import CommandSpawnError, TrudgerError
from ..utils.rich_logging import log_transition, sanitize_log_value
from .interrupt import check_interrupted
from .run_state import RunState, make_quit
from .task import TaskId
from .tracker import fetch_task_status, run_next_task

# next_task exit code meaning "nothing to do"
NO_TASK_EXIT_CODE = 1


def ensure_task_ready(state: RunState, task_id: TaskId) -> None:
    """Raise ``task_not_ready`` unless the task is ready/open (absent and unknown are not)."""
    try:
        status = fetch_task_status(state, task_id)
    except TrudgerError as e:
        raise make_quit(f"task_status_failed:{e}", 1) from e

    if status is not None and status.is_ready():
        return

    state.console.error(f"Task {task_id} is not ready (status: {status or ''}).")
    raise make_quit(f"task_not_ready:{task_id}", 1)


def precheck_manual_tasks(state: RunState) -> None:
    for task_id in list(state.manual_tasks):
        check_interrupted(state)
        ensure_task_ready(state, task_id)


def next_task_id(state: RunState) -> Optional[TaskId]:
    """
    Ask the tracker for the next candidate.

    Returns:
        The candidate id, or None when next_task succeeded but printed nothing

    Raises:
        Quit: no_next_task (exit 0), next_task_failed, next_task_invalid_task_id
    """
    try:
        result = run_next_task(state)
    except CommandSpawnError as e:
        raise make_quit(f"next_task_failed:{e}", 1) from e

    if result.exit_code == NO_TASK_EXIT_CODE:
        log_transition("idle next_task_exit=1")
        raise make_quit("no_next_task", 0)
    if result.exit_code != 0:
        state.console.error(f"next_task command failed with exit code {result.exit_code}.")
        raise make_quit(f"next_task_failed:{result.exit_code}", result.exit_code)

    token = result.first_token
    if not token:
        return None
    try:
        return TaskId(token)
    except ValueError as e:
        state.console.error(f"next_task returned an invalid task id: {token} ({e})")
        raise make_quit(f"next_task_invalid_task_id:{e}", 1) from e


def select_next_task(state: RunState) -> TaskId:
    """Pop the next manual id, or pick a ready task from the tracker."""
    if state.manual_tasks:
        return state.manual_tasks.pop(0)

    if not state.config.next_task_command:
        log_transition("idle missing_next_task_command")
        raise make_quit("missing_next_task_command", 0)

    skip_count = 0
    while True:
        check_interrupted(state)
        task_id = next_task_id(state)
        if task_id is None:
            log_transition("idle no_task")
            raise make_quit("no_task", 0)

        try:
            status = fetch_task_status(state, task_id)
        except TrudgerError as e:
            raise make_quit(f"task_status_failed:{e}", 1) from e

        if status is None:
            state.console.error(f"Task {task_id} missing status.")
            raise make_quit(f"task_missing_status:{task_id}", 1)
        if status.is_ready():
            return task_id

        log_transition(f"skip_not_ready task={task_id} status={sanitize_log_value(status.raw)}")
        skip_count += 1
        if skip_count >= state.skip_not_ready_limit:
            log_transition(f"idle no_ready_task attempts={skip_count}")
            state.console.warning(f"No ready task found after {skip_count} attempts.")
            raise make_quit("no_ready_task", 0)

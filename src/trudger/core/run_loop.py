"""Main run loop: select a task, run its solve/review cycle, repeat.

The loop never returns normally; every exit is a ``Quit``.
"""

import logging
from typing import NoReturn

from ..errors import Quit, TrudgerError
from ..utils.rich_logging import log_transition, sanitize_log_value
from .interrupt import check_interrupted
from .notifications import NotificationEvent
from .review_cycle import run_review_cycle
from .run_state import RunState
from .selector import precheck_manual_tasks, select_next_task
from .task import StatusKind
from .tracker import join_task_ids, query_task_status, reset_task

logger = logging.getLogger(__name__)


def notify(state: RunState, event: NotificationEvent) -> None:
    if state.notifier is not None:
        state.notifier.dispatch(event, state)


def run_loop(state: RunState) -> NoReturn:
    """
    Process tasks until a ``Quit`` is raised.

    Manual tasks are all pre-checked first; a not-ready manual task aborts
    the run before any task is started or next_task is called.
    """
    check_interrupted(state)
    if state.manual_tasks:
        precheck_manual_tasks(state)

    while True:
        check_interrupted(state)
        task_id = select_next_task(state)

        state.begin_task(task_id)
        notify(state, NotificationEvent.TASK_START)

        run_review_cycle(state, task_id)

        notify(state, NotificationEvent.TASK_END)
        log_transition(
            f"task_lists completed={join_task_ids(state.completed_tasks) or ''} "
            f"needs_human={join_task_ids(state.needs_human_tasks) or ''}"
        )
        state.clear_current_task()


def reset_task_on_exit(state: RunState, quit: Quit) -> None:
    """
    Best-effort reset of a task left in_progress by a fatal exit.

    Only runs for nonzero exits with a current task, and only when the tracker
    still reports the task as in_progress. Never raises.
    """
    if quit.code == 0 or state.current_task_id is None:
        return
    task_id = state.current_task_id

    try:
        status = query_task_status(state, task_id)
    except TrudgerError as e:
        logger.warning(f"Failed to check task status for task {task_id}, skipping reset: {e}")
        log_transition(
            f"reset_task_skip task={task_id} reason=task_status_failed "
            f"err={sanitize_log_value(str(e))}"
        )
        return

    if status is None:
        logger.warning(
            f"commands.task_status returned an empty status for task {task_id}, skipping reset."
        )
        log_transition(f"reset_task_skip task={task_id} reason=task_status_empty")
        return

    if status.kind is not StatusKind.IN_PROGRESS:
        log_transition(f"reset_task_skip task={task_id} status={sanitize_log_value(status.raw)}")
        return

    try:
        reset_task(state, task_id)
    except TrudgerError as e:
        logger.error(f"Failed to reset task {task_id}: {e}")
        log_transition(f"reset_task_failed task={task_id} err={sanitize_log_value(str(e))}")
        return
    log_transition(f"reset_task task={task_id}")


def finish_current_task_context(state: RunState) -> None:
    """Close out a task interrupted mid-cycle: fire task_end, then clear it."""
    if state.current_task_id is None:
        return
    notify(state, NotificationEvent.TASK_END)
    state.clear_current_task()

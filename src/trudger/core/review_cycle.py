"""Solve/review cycle for a single task.

Each pass marks the task in progress, lets the agent solve it, lets the
review agent review it, then reads the tracker status:
- closed: task completed, on_completed hook runs
- blocked: task escalated, on_requires_human hook runs
- anything else: retry, until review_loop_limit passes force escalation
"""

from enum import Enum

from ..errors import TrudgerError
from ..utils.rich_logging import log_transition, sanitize_log_value
from .interrupt import check_interrupted
from .run_state import RunState, make_quit
from .task import Phase, StatusKind, TaskId, TaskStatus
from .tracker import (
    RESUME_ARGS,
    fetch_task_status,
    mark_in_progress,
    run_agent_review,
    run_agent_solve,
    run_hook,
    run_task_show,
    update_task_status,
)


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    NEEDS_HUMAN = "needs_human"


def _fail(state: RunState, reason: str):
    state.console.set_task_context(phase=Phase.ERROR.value)
    return make_quit(reason, 1)


def _complete(state: RunState, task_id: TaskId) -> CycleOutcome:
    state.completed_tasks.append(task_id)
    log_transition(f"completed task={task_id}")
    try:
        run_hook(state, state.config.hooks.on_completed, task_id, "on_completed")
    except TrudgerError as e:
        raise make_quit(f"error:{e}", 1) from e
    return CycleOutcome.COMPLETED


def _escalate(state: RunState, task_id: TaskId) -> CycleOutcome:
    state.needs_human_tasks.append(task_id)
    log_transition(f"needs_human task={task_id}")
    try:
        run_hook(state, state.config.hooks.on_requires_human, task_id, "on_requires_human")
    except TrudgerError as e:
        raise make_quit(f"error:{e}", 1) from e
    return CycleOutcome.NEEDS_HUMAN


def run_review_cycle(state: RunState, task_id: TaskId) -> CycleOutcome:
    """
    Drive ``task_id`` to completion or escalation.

    Returns:
        Which list the task was appended to

    Raises:
        Quit: On interrupt or any fatal command failure
    """
    limit = state.config.review_loop_limit
    review_loops = 0

    while True:
        check_interrupted(state)
        state.console.set_task_context(phase=Phase.SOLVING.value)
        log_transition(f"state=SOLVING task={task_id} loop={review_loops}")

        try:
            mark_in_progress(state, task_id)
        except TrudgerError as e:
            raise _fail(state, f"error:{e}") from e

        check_interrupted(state)
        try:
            run_task_show(state, task_id)
        except TrudgerError as e:
            log_transition(f"error task={task_id}")
            raise _fail(state, f"error:{e}") from e

        check_interrupted(state)
        try:
            run_agent_solve(state, RESUME_ARGS if review_loops > 0 else ())
        except TrudgerError as e:
            log_transition(f"solve_failed task={task_id}")
            state.console.error(f"Agent solve failed for task {task_id}: {e}")
            raise _fail(state, f"solve_failed:{task_id}") from e

        state.console.set_task_context(phase=Phase.REVIEWING.value)
        log_transition(f"state=REVIEWING task={task_id} loop={review_loops}")

        check_interrupted(state)
        try:
            run_task_show(state, task_id)
        except TrudgerError as e:
            raise _fail(state, f"error:{e}") from e

        check_interrupted(state)
        try:
            run_agent_review(state)
        except TrudgerError as e:
            log_transition(f"review_failed task={task_id}")
            state.console.error(f"Agent review failed for task {task_id}: {e}")
            raise _fail(state, f"review_failed:{task_id}") from e

        check_interrupted(state)
        try:
            status = fetch_task_status(state, task_id)
        except TrudgerError as e:
            raise make_quit(f"task_status_failed:{e}", 1) from e

        if status is None:
            log_transition(f"review_state_missing task={task_id}")
            state.console.error(f"Task {task_id} missing status after review.")
            raise _fail(state, f"task_missing_status_after_review:{task_id}")

        log_transition(f"review_state task={task_id} status={sanitize_log_value(status.raw)}")

        if status.kind is StatusKind.CLOSED:
            return _complete(state, task_id)
        if status.kind is StatusKind.BLOCKED:
            return _escalate(state, task_id)

        review_loops += 1
        if review_loops < limit:
            log_transition(f"review_loop_retry task={task_id} loop={review_loops} limit={limit}")
            continue

        log_transition(f"review_loop_exhausted task={task_id} loops={review_loops} limit={limit}")
        try:
            update_task_status(state, task_id, StatusKind.BLOCKED)
        except TrudgerError as e:
            raise _fail(state, f"error:{e}") from e
        state.current_task_status = TaskStatus.of(StatusKind.BLOCKED)
        return _escalate(state, task_id)

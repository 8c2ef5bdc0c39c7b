"""Tests for the solve/review cycle of a single task."""

import pytest

from trudger.core.review_cycle import CycleOutcome, run_review_cycle
from trudger.core.task import StatusKind, TaskId
from trudger.errors import Quit

from tests.unit.runner_fixtures import (
    AGENT_REVIEW,
    AGENT_SOLVE,
    ON_COMPLETED,
    ON_REQUIRES_HUMAN,
    TASK_SHOW,
    TASK_STATUS,
    TASK_UPDATE,
    make_config,
)

TASK = TaskId("tr-1")


def _started(make_state, **overrides):
    state = make_state(**overrides)
    state.begin_task(TASK)
    return state


class TestOutcomes:
    def test_closed_completes_task(self, make_state, runner, transitions):
        """Test that a closed status completes the task."""
        runner.set(TASK_STATUS, "closed")
        state = _started(make_state)

        assert run_review_cycle(state, TASK) is CycleOutcome.COMPLETED

        assert state.completed_tasks == ["tr-1"]
        assert state.needs_human_tasks == []
        assert runner.count(ON_COMPLETED) == 1
        assert runner.count(ON_REQUIRES_HUMAN) == 0
        assert "completed task=tr-1" in transitions.messages

    def test_blocked_escalates_task(self, make_state, runner):
        """Test that a blocked status escalates the task."""
        runner.set(TASK_STATUS, "blocked")
        state = _started(make_state)

        assert run_review_cycle(state, TASK) is CycleOutcome.NEEDS_HUMAN

        assert state.needs_human_tasks == ["tr-1"]
        assert runner.count(ON_REQUIRES_HUMAN) == 1
        assert runner.count(ON_COMPLETED) == 0

    def test_command_order_for_one_pass(self, make_state, runner):
        """Test the command order of a single pass."""
        runner.set(TASK_STATUS, "closed")
        run_review_cycle(_started(make_state), TASK)

        assert [call.command for call in runner.calls] == [
            TASK_UPDATE,
            TASK_SHOW,
            AGENT_SOLVE,
            TASK_SHOW,
            AGENT_REVIEW,
            TASK_STATUS,
            ON_COMPLETED,
        ]

    def test_marks_in_progress_with_status_args(self, make_state, runner):
        """Test that the task is marked in_progress first."""
        runner.set(TASK_STATUS, "closed")
        run_review_cycle(_started(make_state), TASK)

        update = runner.calls_to(TASK_UPDATE)[0]
        assert update.args == ["--status", "in_progress"]
        assert update.env.target_status == "in_progress"
        assert update.capture is False

    def test_agent_environment(self, make_state, runner):
        """Test the environment seen by solve and review."""
        runner.set(TASK_SHOW, "Task tr-1: fix it")
        runner.set(TASK_STATUS, "closed")
        state = _started(make_state, completed_tasks=[TaskId("tr-0")])

        run_review_cycle(state, TASK)

        solve = runner.calls_to(AGENT_SOLVE)[0]
        assert solve.args == []
        assert solve.env.prompt == "solve the task"
        assert solve.env.review_prompt is None
        assert solve.env.task_show == "Task tr-1: fix it"
        assert solve.env.completed == "tr-0"

        review = runner.calls_to(AGENT_REVIEW)[0]
        assert review.args == ["resume", "--last"]
        assert review.env.review_prompt == "review the task"
        assert review.env.prompt is None

    def test_completion_hook_sees_updated_lists(self, make_state, runner):
        """Test that on_completed sees the updated completed list."""
        runner.set(TASK_STATUS, "closed")
        state = _started(make_state)

        run_review_cycle(state, TASK)

        hook = runner.calls_to(ON_COMPLETED)[0]
        assert hook.env.completed == "tr-1"
        assert hook.env.task_status == "closed"
        assert hook.task_token == "tr-1"


class TestReviewLoop:
    def test_retry_resumes_agent(self, make_state, runner, transitions):
        """Test that a retry resumes the agent session."""
        runner.set(TASK_STATUS, "in_progress", "closed")
        state = _started(make_state)

        assert run_review_cycle(state, TASK) is CycleOutcome.COMPLETED

        solves = runner.calls_to(AGENT_SOLVE)
        assert [call.args for call in solves] == [[], ["resume", "--last"]]
        assert runner.count(TASK_UPDATE) == 2
        assert "review_loop_retry task=tr-1 loop=1 limit=3" in transitions.messages
        assert "state=SOLVING task=tr-1 loop=1" in transitions.messages

    def test_unknown_status_after_review_retries(self, make_state, runner, transitions):
        """Test that an unknown status after review retries."""
        runner.set(TASK_STATUS, "deferred", "closed")

        assert run_review_cycle(_started(make_state), TASK) is CycleOutcome.COMPLETED
        assert "review_state task=tr-1 status=deferred" in transitions.messages

    def test_exhausted_loop_forces_escalation(self, make_state, runner, transitions):
        """Test that an exhausted review loop marks the task blocked."""
        runner.set(TASK_STATUS, "open")
        state = _started(make_state, config=make_config(review_loop_limit=2))

        assert run_review_cycle(state, TASK) is CycleOutcome.NEEDS_HUMAN

        assert runner.count(AGENT_SOLVE) == 2
        assert runner.count(AGENT_REVIEW) == 2
        assert [call.args for call in runner.calls_to(TASK_UPDATE)] == [
            ["--status", "in_progress"],
            ["--status", "in_progress"],
            ["--status", "blocked"],
        ]
        assert state.current_task_status.kind is StatusKind.BLOCKED
        assert state.needs_human_tasks == ["tr-1"]
        assert runner.calls_to(ON_REQUIRES_HUMAN)[0].env.task_status == "blocked"
        assert "review_loop_exhausted task=tr-1 loops=2 limit=2" in transitions.messages

    def test_limit_of_one_never_retries(self, make_state, runner):
        """Test that a limit of one allows a single pass."""
        runner.set(TASK_STATUS, "in_progress")
        state = _started(make_state, config=make_config(review_loop_limit=1))

        assert run_review_cycle(state, TASK) is CycleOutcome.NEEDS_HUMAN
        assert runner.count(AGENT_SOLVE) == 1


class TestFailures:
    def test_solve_failure(self, make_state, runner, transitions):
        """Test that a solve failure quits with solve_failed."""
        runner.set(AGENT_SOLVE, 2)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert (exc_info.value.code, exc_info.value.reason) == (1, "solve_failed:tr-1")
        assert "solve_failed task=tr-1" in transitions.messages
        assert runner.count(AGENT_REVIEW) == 0

    def test_review_failure(self, make_state, runner):
        """Test that a review failure quits with review_failed."""
        runner.set(AGENT_REVIEW, 1)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert (exc_info.value.code, exc_info.value.reason) == (1, "review_failed:tr-1")
        assert runner.count(TASK_STATUS) == 0

    def test_task_show_failure(self, make_state, runner, transitions):
        """Test that a show failure quits before the agent runs."""
        runner.set(TASK_SHOW, 4)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert exc_info.value.reason == "error:task_show failed with exit code 4"
        assert "error task=tr-1" in transitions.messages
        assert runner.count(AGENT_SOLVE) == 0

    def test_mark_in_progress_failure(self, make_state, runner):
        """Test that a failed status update is fatal."""
        runner.set(TASK_UPDATE, 5)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert exc_info.value.reason == (
            "error:task_update_in_progress failed to set status in_progress (exit code 5)"
        )

    def test_missing_status_after_review(self, make_state, runner, transitions):
        """Test that an empty status after review is fatal."""
        runner.set(TASK_STATUS, "")

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert exc_info.value.reason == "task_missing_status_after_review:tr-1"
        assert "review_state_missing task=tr-1" in transitions.messages

    def test_status_command_failure_after_review(self, make_state, runner):
        """Test that a failing status command after review is fatal."""
        runner.set(TASK_STATUS, 9)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(_started(make_state), TASK)

        assert exc_info.value.reason == "task_status_failed:task_status failed with exit code 9"

    def test_completion_hook_failure_is_fatal(self, make_state, runner):
        """Test that a failing completion hook is fatal."""
        runner.set(TASK_STATUS, "closed")
        runner.set(ON_COMPLETED, 3)
        state = _started(make_state)

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(state, TASK)

        assert exc_info.value.reason == "error:hook on_completed failed with exit code 3"
        assert state.completed_tasks == ["tr-1"]


class TestInterrupt:
    @pytest.mark.parametrize(
        "trigger,occurrence,next_command,expected_count",
        [
            (TASK_UPDATE, 1, TASK_SHOW, 0),
            (TASK_SHOW, 1, AGENT_SOLVE, 0),
            (AGENT_SOLVE, 1, TASK_SHOW, 1),
            (TASK_SHOW, 2, AGENT_REVIEW, 0),
            (AGENT_REVIEW, 1, TASK_STATUS, 0),
        ],
    )
    def test_interrupt_stops_before_next_step(
        self, make_state, runner, trigger, occurrence, next_command, expected_count
    ):
        """Test that an interrupt during any step prevents the following command."""
        state = _started(make_state)

        def interrupt_on_trigger(call):
            if call.command == trigger and runner.count(trigger) == occurrence:
                state.interrupt.set()

        runner.on_call = interrupt_on_trigger

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(state, TASK)

        assert (exc_info.value.code, exc_info.value.reason) == (130, "interrupted")
        assert runner.count(next_command) == expected_count
        assert runner.count(ON_COMPLETED) == 0

    def test_interrupt_before_cycle_runs_nothing(self, make_state, runner):
        """Test that a pending interrupt stops the cycle before the status update."""
        state = _started(make_state)
        state.interrupt.set()

        with pytest.raises(Quit) as exc_info:
            run_review_cycle(state, TASK)

        assert exc_info.value.code == 130
        assert runner.count(TASK_UPDATE) == 0
        assert runner.calls == []

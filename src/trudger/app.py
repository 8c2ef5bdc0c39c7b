"""Application wrapper around the run loop.

Loads configuration and prompts, installs signal handlers, fires the run
boundary notifications and turns every way a run can end into a ``Quit``.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .core.config import RuntimeSettings, TrudgerConfig, load_config, validate_config
from .core.interrupt import install_signal_handlers, restore_signal_handlers
from .core.notifications import NotificationDispatcher, NotificationEvent
from .core.prompts import prompt_paths, render_prompt
from .core.run_loop import finish_current_task_context, notify, reset_task_on_exit, run_loop
from .core.run_state import RunState, make_quit
from .core.task import TaskId
from .errors import ConfigError, Quit
from .utils.error_handling import ErrorContext
from .utils.rich_logging import (
    ContextLogger,
    attach_transition_file,
    detach_transition_file,
)
from .utils.subprocess_utils import CommandRunner, ShellCommandRunner
from .utils.validators import split_manual_task_values

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_REL = Path(".config/trudger.yml")


@dataclass
class RunOutcome:
    """How the run ended plus the per-run task lists (for the CLI summary)."""
    quit: Quit
    completed_tasks: List[TaskId] = field(default_factory=list)
    needs_human_tasks: List[TaskId] = field(default_factory=list)


def default_config_path(home: Optional[Path] = None) -> Path:
    return (home if home is not None else Path.home()) / DEFAULT_CONFIG_REL


def bootstrap_config_message(default_path: Path) -> str:
    return (
        f"Missing config file: {default_path}\n\n"
        "Create it with agent_command, agent_review_command, commands.* and hooks.* "
        "entries, or point trudger at another file with:\n"
        "  trudger --config PATH"
    )


def parse_manual_tasks(raw_values: Sequence[str]) -> List[TaskId]:
    """
    Turn repeated/comma-separated ``-t`` values into task ids.

    Raises:
        ValueError: On an empty segment or an invalid id
    """
    return [TaskId(value) for value in split_manual_task_values(raw_values)]


def _invocation_folder() -> str:
    """Working directory for notifications, or "" if it no longer exists."""
    try:
        return os.getcwd()
    except OSError as e:
        logger.warning(f"Could not determine working directory: {e}")
        return ""


def _fail_early(message: str, reason: Optional[str] = None) -> RunOutcome:
    """Startup failure before the run loop exists (no quit transition)."""
    logger.error(message)
    return RunOutcome(quit=Quit(1, reason if reason is not None else message))


def run_app(
    config_path: Optional[Path] = None,
    task_values: Sequence[str] = (),
    positional: Sequence[str] = (),
    *,
    runner: Optional[CommandRunner] = None,
    home: Optional[Path] = None,
    console: Optional[ContextLogger] = None,
    install_signals: bool = True,
) -> RunOutcome:
    """
    Run trudger end to end.

    Args:
        config_path: Config file (default: ~/.config/trudger.yml)
        task_values: Raw -t/--task values
        positional: Positional arguments (rejected)
        runner: Command runner (default: bash -lc runner)
        home: Home directory for the default config and prompt files
        console: Logger for human-facing run messages
        install_signals: Install SIGINT/SIGTERM handlers for the run

    Returns:
        RunOutcome whose quit carries the exit code and reason
    """
    try:
        manual_tasks = parse_manual_tasks(task_values)
    except ValueError as e:
        return _fail_early(str(e))

    if positional:
        return _fail_early(
            "Positional arguments are not supported.\n"
            "Migration: pass manual task ids via -t/--task "
            f"(for example: trudger -t {' -t '.join(positional)}).",
            reason="positional_args_not_supported",
        )

    default_path = default_config_path(home)
    explicit_config = config_path is not None
    config_path = Path(config_path) if explicit_config else default_path

    if not config_path.is_file():
        message = (
            f"Missing config file: {config_path}"
            if explicit_config
            else bootstrap_config_message(default_path)
        )
        return _fail_early(message, reason=f"missing_config:{config_path}")

    try:
        config = load_config(config_path)
    except ConfigError as e:
        return _fail_early(str(e))

    file_handler = attach_transition_file(config.log_path)
    try:
        return _run_with_config(
            config,
            config_path,
            manual_tasks,
            runner=runner or ShellCommandRunner(),
            home=home,
            console=console,
            install_signals=install_signals,
        )
    finally:
        detach_transition_file(file_handler)


def _run_with_config(
    config: TrudgerConfig,
    config_path: Path,
    manual_tasks: List[TaskId],
    *,
    runner: CommandRunner,
    home: Optional[Path],
    console: Optional[ContextLogger],
    install_signals: bool,
) -> RunOutcome:
    try:
        validate_config(config, manual_tasks)
        solve_path, review_path = prompt_paths(home)
        prompt_solve = render_prompt(solve_path)
        prompt_review = render_prompt(review_path)
    except ConfigError as e:
        logger.error(str(e))
        return RunOutcome(quit=make_quit(str(e), 1))

    state = RunState(
        config=config,
        config_path=config_path,
        runner=runner,
        prompt_solve=prompt_solve,
        prompt_review=prompt_review,
        invocation_folder=_invocation_folder(),
        manual_tasks=manual_tasks,
        skip_not_ready_limit=RuntimeSettings().skip_not_ready_limit,
        interrupt=threading.Event(),
    )
    if console is not None:
        state.console = console

    previous_handlers = {}
    if install_signals:
        with ErrorContext("installing interrupt handlers", raise_on_error=False) as ctx:
            previous_handlers = install_signal_handlers(state.interrupt)
        previous_handlers = ctx.get_result(previous_handlers) or {}

    notifier = NotificationDispatcher.from_config(
        config,
        runner,
        config_path,
        folder=state.invocation_folder,
        run_started_at=state.run_started_at,
    )
    state.notifier = notifier
    notifier.attach_log_mirror()

    try:
        notify(state, NotificationEvent.RUN_START)
        try:
            run_loop(state)
        except Quit as q:
            result = q

        reset_task_on_exit(state, result)
        finish_current_task_context(state)
        state.run_exit_code = result.code
        notify(state, NotificationEvent.RUN_END)
    finally:
        notifier.detach_log_mirror()
        restore_signal_handlers(previous_handlers)

    return RunOutcome(
        quit=result,
        completed_tasks=list(state.completed_tasks),
        needs_human_tasks=list(state.needs_human_tasks),
    )

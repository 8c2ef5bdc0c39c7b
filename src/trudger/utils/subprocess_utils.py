"""Shell command execution with the TRUDGER_* environment contract."""

import logging
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Dict, List, Mapping, Optional, Sequence

from ..errors import CommandSpawnError
from .rich_logging import log_transition, sanitize_log_value

logger = logging.getLogger(__name__)

# Guardrail against E2BIG spawn failures from oversized values
TRUDGER_ENV_VALUE_MAX_BYTES = 64 * 1024
# Budget for the TRUDGER_* variables we set; the inherited environment is not counted
TRUDGER_ENV_TOTAL_MAX_BYTES = 128 * 1024

# Shortened first, in this order, when the total budget is exceeded
_REDUCIBLE_FIELDS = ("task_show", "prompt", "review_prompt")


def truncate_utf8(value: str, max_bytes: int) -> str:
    """Cut ``value`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max(max_bytes, 0)].decode("utf-8", errors="ignore")


def utf8_len(value: str) -> int:
    return len(value.encode("utf-8"))


def render_args(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(arg) for arg in args)


@dataclass
class CommandEnv:
    """TRUDGER_* variables for one command; None means "removed from the environment"."""
    config_path: str
    task_id: Optional[str] = None
    task_show: Optional[str] = None
    task_status: Optional[str] = None
    target_status: Optional[str] = None
    prompt: Optional[str] = None
    review_prompt: Optional[str] = None
    completed: Optional[str] = None
    needs_human: Optional[str] = None
    notify_event: Optional[str] = None
    notify_duration_ms: Optional[str] = None
    notify_folder: Optional[str] = None
    notify_exit_code: Optional[str] = None
    notify_task_id: Optional[str] = None
    notify_task_description: Optional[str] = None
    notify_message: Optional[str] = None
    notify_payload_path: Optional[str] = None

    def variables(self) -> Dict[str, Optional[str]]:
        """Map every TRUDGER_* name to its value (None when unset)."""
        return {f"TRUDGER_{f.name.upper()}": getattr(self, f.name) for f in fields(self)}

    def _payload_bytes(self, limits: Mapping[str, int]) -> int:
        # Approximates execve accounting for "KEY=VALUE\0"
        total = 0
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            max_bytes = limits.get(f.name, TRUDGER_ENV_VALUE_MAX_BYTES)
            total += len(f"TRUDGER_{f.name.upper()}") + 1 + utf8_len(truncate_utf8(value, max_bytes)) + 1
        return total

    def _fit_total_budget(self, label: str, task_token: str) -> Dict[str, int]:
        limits = {name: TRUDGER_ENV_VALUE_MAX_BYTES for name in _REDUCIBLE_FIELDS}
        total = self._payload_bytes(limits)
        if total <= TRUDGER_ENV_TOTAL_MAX_BYTES:
            return limits

        over = total - TRUDGER_ENV_TOTAL_MAX_BYTES
        for name in _REDUCIBLE_FIELDS:
            value = getattr(self, name)
            if over == 0 or value is None:
                continue
            current = utf8_len(truncate_utf8(value, limits[name]))
            if current == 0:
                continue
            limits[name] = min(limits[name], max(current - over, 0))
            reduced = current - utf8_len(truncate_utf8(value, limits[name]))
            over = max(over - reduced, 0)

        new_total = self._payload_bytes(limits)
        if new_total < total:
            logger.warning(
                f"TRUDGER_* env payload is {total} bytes; "
                f"truncating to {new_total} bytes for command execution."
            )
            log_transition(
                f"env_truncate_total label={label} task={task_token} "
                f"original_bytes={total} truncated_bytes={new_total}"
            )
        return limits

    def build_environ(
        self,
        base: Optional[Mapping[str, str]] = None,
        *,
        label: str = "command",
        task_token: str = "none",
    ) -> Dict[str, str]:
        """
        Build the child process environment.

        Args:
            base: Inherited environment (defaults to os.environ)
            label: Command label for truncation log lines
            task_token: Task id (or "none") for truncation log lines

        Returns:
            New environment with TRUDGER_* values set, capped, or removed
        """
        environ = dict(os.environ if base is None else base)
        limits = self._fit_total_budget(label, task_token)

        for f in fields(self):
            key = f"TRUDGER_{f.name.upper()}"
            value = getattr(self, f.name)
            if value is None:
                environ.pop(key, None)
                continue

            max_bytes = limits.get(f.name, TRUDGER_ENV_VALUE_MAX_BYTES)
            rendered = truncate_utf8(value, max_bytes)
            original_bytes = utf8_len(value)
            truncated_bytes = utf8_len(rendered)
            if original_bytes != truncated_bytes:
                logger.warning(
                    f"{key} is {original_bytes} bytes; "
                    f"truncating to {truncated_bytes} bytes for command execution."
                )
                log_transition(
                    f"env_truncate label={label} task={task_token} key={key} "
                    f"original_bytes={original_bytes} truncated_bytes={truncated_bytes}"
                )
            environ[key] = rendered

        return environ


@dataclass
class CommandResult:
    """Exit code plus stdout (empty when stdio was inherited)."""
    exit_code: int
    stdout: str = ""

    @property
    def first_token(self) -> str:
        tokens = self.stdout.split()
        return tokens[0] if tokens else ""


def run_command(
    cmd: List[str],
    *,
    capture_output: bool = True,
    env: Optional[dict] = None,
) -> subprocess.CompletedProcess:
    """
    Run a command without raising on nonzero exit.

    Args:
        cmd: Command argv
        capture_output: Capture stdout/stderr (otherwise inherit the terminal)
        env: Environment variables

    Returns:
        CompletedProcess with stdout, stderr, returncode

    Raises:
        OSError: If the command cannot be started
        ValueError: If an argument or environment value contains a NUL byte
    """
    return subprocess.run(
        cmd,
        capture_output=capture_output,
        text=True,
        errors="replace",
        env=env,
        check=False,
    )


class CommandRunner(ABC):
    """Runs configured shell commands; the seam replaced by a scripted runner in tests."""

    @abstractmethod
    def run(
        self,
        command: str,
        *,
        label: str,
        env: CommandEnv,
        task_token: str = "none",
        args: Sequence[str] = (),
        capture: bool = True,
    ) -> CommandResult:
        """
        Run ``command`` through the shell.

        Args:
            command: Shell command text (empty means "no-op, success")
            label: Role of the command for log lines (e.g. "task", "agent_solve")
            env: TRUDGER_* environment
            task_token: Task id, or "none"
            args: Positional arguments passed to the command
            capture: Capture stdout; otherwise inherit stdio

        Returns:
            CommandResult

        Raises:
            CommandSpawnError: If the shell could not be started (including NUL
                bytes in arguments or environment values)
        """


class ShellCommandRunner(CommandRunner):
    """Runs commands as ``bash -lc <command> -- <args...>``."""

    def __init__(self, shell: str = "bash"):
        self.shell = shell

    def build_argv(self, command: str, args: Sequence[str]) -> List[str]:
        argv = [self.shell, "-lc", command]
        if args:
            argv.append("--")
            argv.extend(args)
        return argv

    def run(
        self,
        command: str,
        *,
        label: str,
        env: CommandEnv,
        task_token: str = "none",
        args: Sequence[str] = (),
        capture: bool = True,
    ) -> CommandResult:
        if not command:
            return CommandResult(exit_code=0)

        log_transition(
            f"cmd start label={label} task={task_token} mode=bash_lc "
            f"command={sanitize_log_value(command)} args={sanitize_log_value(render_args(args))}"
        )

        environ = env.build_environ(label=label, task_token=task_token)
        try:
            completed = run_command(
                self.build_argv(command, args),
                capture_output=capture,
                env=environ,
            )
        except (OSError, ValueError) as e:
            # ValueError: NUL byte in an argument or environment value
            raise CommandSpawnError(command, str(e)) from e

        # Killed by a signal: no exit status of its own
        exit_code = completed.returncode if completed.returncode >= 0 else 1

        log_transition(f"cmd exit label={label} task={task_token} exit={exit_code}")

        stdout = (completed.stdout or "") if capture else ""
        return CommandResult(exit_code=exit_code, stdout=stdout)

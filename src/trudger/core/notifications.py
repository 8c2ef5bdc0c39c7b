"""Scoped notification hook dispatch.

``hooks.on_notification`` receives lifecycle events according to
``hooks.on_notification_scope``. At most one dispatch runs at a time;
overlapping ones (e.g. transition lines logged by the hook's own command
run) are skipped. Hook failures are logged and never end the run.
"""

import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel

from ..errors import CommandSpawnError
from ..utils.error_handling import log_and_ignore
from ..utils.rich_logging import (
    log_transition,
    sanitize_log_value,
    transitions_logger,
)
from ..utils.subprocess_utils import CommandEnv, CommandRunner
from .config import NotificationScope, TrudgerConfig
from .run_state import RunState
from .tracker import build_command_env

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"


class NotificationEvent(str, Enum):
    RUN_START = "run_start"
    RUN_END = "run_end"
    TASK_START = "task_start"
    TASK_END = "task_end"
    LOG = "log"  # Mirrored transition line (all_logs scope)


SCOPE_EVENTS = {
    NotificationScope.TASK_BOUNDARIES: frozenset(
        {NotificationEvent.TASK_START, NotificationEvent.TASK_END}
    ),
    NotificationScope.RUN_BOUNDARIES: frozenset(
        {NotificationEvent.RUN_START, NotificationEvent.RUN_END}
    ),
    NotificationScope.ALL_LOGS: frozenset(NotificationEvent),
}


class NotificationPayload(BaseModel):
    """JSON document handed to the hook via TRUDGER_NOTIFY_PAYLOAD_PATH."""
    event: str
    duration_ms: int
    folder: str
    exit_code: Optional[int] = None
    task_id: str = ""
    task_description: str = ""
    message: Optional[str] = None

    def write_to_temp_file(self) -> Path:
        """
        Write the payload as one JSON line to a new temp file.

        Returns:
            Path of the file; the caller removes it

        Raises:
            OSError: If the file cannot be created or written
        """
        fd, name = tempfile.mkstemp(prefix="trudger-notify-", suffix=".json")
        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.model_dump_json(exclude_none=True))
                f.write("\n")
        except OSError:
            path.unlink(missing_ok=True)
            raise
        return path

    def apply_to(self, env: CommandEnv, payload_path: Path) -> CommandEnv:
        env.notify_event = self.event
        env.notify_duration_ms = str(self.duration_ms)
        env.notify_folder = self.folder
        env.notify_exit_code = "" if self.exit_code is None else str(self.exit_code)
        env.notify_task_id = self.task_id
        env.notify_task_description = self.task_description
        env.notify_message = self.message or ""
        env.notify_payload_path = str(payload_path)
        return env


def task_description(show_text: Optional[str]) -> str:
    """First non-blank line of the task's show output, trimmed."""
    for line in (show_text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


def _redact_between(text: str, key: str, end_marker: Optional[str]) -> str:
    start = text.find(key)
    if start < 0:
        return text
    value_start = start + len(key)
    value_end = len(text)
    if end_marker is not None:
        marker = text.find(end_marker, value_start)
        if marker >= 0:
            value_end = marker
    return text[:value_start] + REDACTED + text[value_end:]


def redact_transition_message(message: str) -> str:
    """Sanitize a transition line and hide command text and arguments."""
    redacted = sanitize_log_value(message)
    redacted = _redact_between(redacted, "command=", " args=")
    return _redact_between(redacted, "args=", None)


def _elapsed_ms(started_at: Optional[float]) -> int:
    if started_at is None:
        return 0
    return max(int((time.monotonic() - started_at) * 1000), 0)


class NotificationDispatcher:
    """Runs the notification hook for events enabled by the configured scope."""

    def __init__(
        self,
        command: Optional[str],
        scope: NotificationScope,
        runner: CommandRunner,
        config_path: Path,
        folder: str = "",
        run_started_at: Optional[float] = None,
    ):
        self.command = command.strip() if command and command.strip() else None
        self.scope = scope
        self.runner = runner
        self.config_path = config_path
        self.folder = folder
        self.run_started_at = run_started_at if run_started_at is not None else time.monotonic()
        self._in_flight = threading.Lock()
        self._log_handler: Optional["NotificationLogHandler"] = None

    @classmethod
    def from_config(
        cls,
        config: TrudgerConfig,
        runner: CommandRunner,
        config_path: Path,
        folder: str = "",
        run_started_at: Optional[float] = None,
    ) -> "NotificationDispatcher":
        return cls(
            command=config.hooks.notification_command,
            scope=config.hooks.on_notification_scope,
            runner=runner,
            config_path=config_path,
            folder=folder,
            run_started_at=run_started_at,
        )

    @property
    def enabled(self) -> bool:
        return self.command is not None

    def enabled_for(self, event: NotificationEvent) -> bool:
        return self.enabled and event in SCOPE_EVENTS[self.scope]

    @contextmanager
    def _dispatch_slot(self) -> Iterator[bool]:
        """Yield True when this dispatch may run, False when one is already in flight."""
        if not self._in_flight.acquire(blocking=False):
            yield False
            return
        try:
            yield True
        finally:
            self._in_flight.release()

    def build_payload(self, event: NotificationEvent, state: RunState) -> NotificationPayload:
        if event in (NotificationEvent.RUN_START, NotificationEvent.TASK_START):
            duration_ms = 0
        elif event is NotificationEvent.TASK_END:
            duration_ms = _elapsed_ms(state.current_task_started_at)
        else:
            duration_ms = _elapsed_ms(state.run_started_at)

        return NotificationPayload(
            event=event.value,
            duration_ms=duration_ms,
            folder=state.invocation_folder,
            exit_code=state.run_exit_code if event is NotificationEvent.RUN_END else None,
            task_id=str(state.current_task_id) if state.current_task_id else "",
            task_description=task_description(state.current_task_show),
        )

    def dispatch(self, event: NotificationEvent, state: RunState) -> None:
        """Fire a boundary event if the scope includes it."""
        if not self.enabled_for(event):
            return
        self._send(
            self.build_payload(event, state),
            build_command_env(state),
            state.task_token,
        )

    def dispatch_log(self, message: str) -> None:
        """Mirror one transition line as a ``log`` event (all_logs scope only)."""
        if not self.enabled_for(NotificationEvent.LOG):
            return
        payload = NotificationPayload(
            event=NotificationEvent.LOG.value,
            duration_ms=_elapsed_ms(self.run_started_at),
            folder=self.folder,
            message=redact_transition_message(message),
        )
        self._send(payload, CommandEnv(config_path=str(self.config_path)), "none")

    def _send(self, payload: NotificationPayload, env: CommandEnv, task_token: str) -> None:
        with self._dispatch_slot() as acquired:
            if not acquired:
                return

            try:
                payload_path = payload.write_to_temp_file()
            except OSError as e:
                self._report_failure(payload.event, task_token, err=f"payload write failed: {e}")
                return

            try:
                result = self.runner.run(
                    self.command,
                    label="on_notification",
                    env=payload.apply_to(env, payload_path),
                    task_token=task_token,
                    capture=False,
                )
            except CommandSpawnError as e:
                self._report_failure(payload.event, task_token, err=str(e))
            else:
                if result.exit_code != 0:
                    self._report_failure(payload.event, task_token, exit_code=result.exit_code)
            finally:
                try:
                    payload_path.unlink(missing_ok=True)
                except OSError as e:
                    log_and_ignore(e, f"Failed to remove notification payload {payload_path}")

    def _report_failure(
        self,
        event: str,
        task_token: str,
        *,
        exit_code: Optional[int] = None,
        err: Optional[str] = None,
    ) -> None:
        # Logged while the dispatch slot is held, so the all_logs mirror skips this line
        if exit_code is not None:
            log_transition(
                f"notification_hook_failed event={event} task={task_token} exit_code={exit_code}"
            )
            logger.warning(f"Notification hook failed with exit code {exit_code}.")
        else:
            log_transition(
                f"notification_hook_failed event={event} task={task_token} "
                f"err={sanitize_log_value(err or '')}"
            )
            logger.warning(f"Failed to run notification hook: {err}.")

    def attach_log_mirror(self) -> None:
        """In all_logs scope, mirror every transition line to the hook."""
        if not self.enabled_for(NotificationEvent.LOG) or self._log_handler is not None:
            return
        self._log_handler = NotificationLogHandler(self)
        transitions_logger().addHandler(self._log_handler)

    def detach_log_mirror(self) -> None:
        if self._log_handler is None:
            return
        transitions_logger().removeHandler(self._log_handler)
        self._log_handler = None


class NotificationLogHandler(logging.Handler):
    """Forwards transition log records to the dispatcher as ``log`` events."""

    def __init__(self, dispatcher: NotificationDispatcher):
        super().__init__(level=logging.INFO)
        self.dispatcher = dispatcher

    def emit(self, record: logging.LogRecord) -> None:
        self.dispatcher.dispatch_log(record.getMessage())

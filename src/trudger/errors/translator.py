"""Translate run outcomes into user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional, Union

from .exceptions import Quit


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Union[Exception, str]
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate quit reasons and configuration errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"^interrupted$": {
            "title": "Run interrupted",
            "explanation": "Trudger received an interrupt and stopped before its next step.",
            "actions": [
                "Check the tracker for a task left in_progress",
                "Re-run trudger to continue with the next task",
            ],
        },
        r"^task_not_ready:": {
            "title": "Manual task is not ready",
            "explanation": "A task passed with -t/--task is not in a ready or open state, so nothing was started.",
            "actions": [
                "Check the task status in your tracker",
                "Re-open the task or drop it from the -t list",
            ],
        },
        r"^(solve_failed|review_failed):": {
            "title": "Agent command failed",
            "explanation": "The coding agent exited with a nonzero status while working on a task.",
            "actions": [
                "Run agent_command / agent_review_command manually to inspect the failure",
                "Check the transition log (log_path) for the failing step",
            ],
        },
        r"^(task_missing_status|task_missing_status_after_review):": {
            "title": "Status command returned no status",
            "explanation": "commands.task_status printed nothing; it must print one of ready, open, in_progress, closed, blocked.",
            "actions": [
                "Run commands.task_status manually with TRUDGER_TASK_ID set",
            ],
        },
        r"^(next_task_failed|next_task_invalid_task_id):": {
            "title": "Next-task command failed",
            "explanation": "commands.next_task failed or printed an invalid task id.",
            "actions": [
                "Run commands.next_task manually and check its first output token",
                "Exit 1 from next_task means 'no task'; other nonzero codes are treated as failures",
            ],
        },
        r"^missing_config:": {
            "title": "Configuration not found",
            "explanation": "No configuration file exists at the selected path.",
            "actions": [
                "Create ~/.config/trudger.yml or pass -c/--config PATH",
            ],
        },
        r"^(error|task_status_failed):": {
            "title": "Tracker command failed",
            "explanation": "A tracker command or hook failed; tracker state may be out of sync.",
            "actions": [
                "Check the transition log (log_path) for the failing command",
                "Verify the task status in your tracker before re-running",
            ],
        },
    }

    def translate(self, error: Union[Exception, str]) -> UserFriendlyError:
        reason = error.reason if isinstance(error, Quit) else str(error)

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, reason):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    show_technical=True,
                )

        # Fallback for unknown errors
        return UserFriendlyError(
            original_error=error,
            title="Trudger stopped",
            explanation=reason,
            actions=["Check the transition log (log_path) for details"],
            show_technical=False,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError, reason: Optional[str] = None) -> str:
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            detail = reason if reason is not None else str(friendly_error.original_error)
            output += f"\n[dim]Reason: {detail}[/]"

        return output

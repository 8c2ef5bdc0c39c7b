"""Tests for ErrorTranslator: user-friendly messages for quit reasons."""

import pytest

from trudger.errors import ErrorTranslator, Quit
from trudger.errors.translator import UserFriendlyError


class TestQuitTranslation:
    """Quit reasons map to titles and fix-it actions."""

    @pytest.mark.parametrize(
        "reason,title",
        [
            ("interrupted", "Run interrupted"),
            ("task_not_ready:tr-1", "Manual task is not ready"),
            ("solve_failed:tr-1", "Agent command failed"),
            ("review_failed:tr-1", "Agent command failed"),
            ("task_missing_status:tr-1", "Status command returned no status"),
            ("task_missing_status_after_review:tr-1", "Status command returned no status"),
            ("next_task_failed:3", "Next-task command failed"),
            ("next_task_invalid_task_id:Invalid task_id: !x", "Next-task command failed"),
            ("missing_config:/tmp/trudger.yml", "Configuration not found"),
            ("error:hook on_completed failed with exit code 1", "Tracker command failed"),
            ("task_status_failed:task_status failed with exit code 2", "Tracker command failed"),
        ],
    )
    def test_known_reasons(self, reason, title):
        """Test that each quit reason family gets its own title."""
        result = ErrorTranslator().translate(Quit(1, reason))

        assert isinstance(result, UserFriendlyError)
        assert result.title == title
        assert result.actions
        assert result.show_technical

    def test_plain_strings_are_translated(self):
        """Test that a bare reason string is accepted."""
        assert ErrorTranslator().translate("interrupted").title == "Run interrupted"

    def test_unknown_reason_falls_back(self):
        """Test that an unrecognized reason is shown as the explanation."""
        result = ErrorTranslator().translate(Quit(1, "commands.next_task must not be empty."))

        assert result.title == "Trudger stopped"
        assert result.explanation == "commands.next_task must not be empty."
        assert not result.show_technical


class TestFormatForCli:
    """Tests for rich markup output."""

    def test_includes_actions_and_reason(self):
        """Test that the formatted text lists numbered actions and the raw reason."""
        translator = ErrorTranslator()
        quit = Quit(1, "solve_failed:tr-7")

        text = translator.format_for_cli(translator.translate(quit), reason=quit.reason)

        assert "[bold red]Agent command failed[/]" in text
        assert "  1. " in text
        assert "Reason: solve_failed:tr-7" in text

    def test_fallback_hides_technical_detail(self):
        """Test that the fallback message does not repeat the reason."""
        translator = ErrorTranslator()

        text = translator.format_for_cli(translator.translate("something odd"))

        assert "Reason:" not in text

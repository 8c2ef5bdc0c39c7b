"""Prompt files handed to the agent via TRUDGER_PROMPT / TRUDGER_REVIEW_PROMPT."""

from pathlib import Path
from typing import Optional, Tuple

from ..errors import ConfigError

PROMPT_SOLVE_REL = Path(".codex/prompts/trudge.md")
PROMPT_REVIEW_REL = Path(".codex/prompts/trudge_review.md")


def prompt_paths(home: Optional[Path] = None) -> Tuple[Path, Path]:
    """Solve and review prompt locations under ``home`` (default: the user's home)."""
    base = home if home is not None else Path.home()
    return base / PROMPT_SOLVE_REL, base / PROMPT_REVIEW_REL


def require_file(path: Path, label: str) -> None:
    if not path.is_file():
        raise ConfigError(f"Missing {label}: {path}")


def strip_front_matter(content: str) -> str:
    """Drop a leading ``---`` ... ``---`` block and the final trailing newline."""
    lines = content.splitlines()
    if lines and lines[0] == "---":
        try:
            end = lines.index("---", 1)
        except ValueError:
            # Unterminated front matter swallows the whole file
            end = len(lines)
        lines = lines[end + 1:]
    return "\n".join(lines)


def render_prompt(path: Path) -> str:
    """
    Read a prompt file and strip its front matter.

    Raises:
        ConfigError: If the file is missing or unreadable
    """
    require_file(path, "prompt file")
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to read prompt {path}: {e}") from e
    return strip_front_matter(content)

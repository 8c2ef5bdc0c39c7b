"""Validation utilities for task identifiers and manual task lists."""

import re
from typing import Iterable, List

TASK_ID_MAX_LENGTH = 200

_TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\-_.:]*$")


def validate_task_id(value: str) -> str:
    """
    Validate a tracker task id.

    Args:
        value: Raw task id (surrounding whitespace is ignored)

    Returns:
        The trimmed task id

    Raises:
        ValueError: If the id is empty, too long, or has invalid characters
    """
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("task_id must not be empty")

    if len(trimmed) > TASK_ID_MAX_LENGTH:
        raise ValueError(f"task_id too long ({len(trimmed)} > {TASK_ID_MAX_LENGTH})")

    if not _TASK_ID_PATTERN.match(trimmed):
        raise ValueError(f"Invalid task_id: {trimmed}")

    return trimmed


def split_manual_task_values(raw_values: Iterable[str]) -> List[str]:
    """
    Split repeated/comma-separated -t/--task values into individual ids.

    Args:
        raw_values: Values as given on the command line

    Returns:
        Trimmed ids in the order given

    Raises:
        ValueError: If any comma-separated segment is empty
    """
    tasks: List[str] = []
    for raw in raw_values:
        for index, segment in enumerate(raw.split(",")):
            trimmed = segment.strip()
            if not trimmed:
                raise ValueError(
                    f"Invalid -t/--task value: empty segment in {raw!r} at index {index}."
                )
            tasks.append(trimmed)
    return tasks

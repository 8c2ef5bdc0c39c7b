"""Task identity and tracker status models."""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator

from ..utils.validators import validate_task_id


class TaskId(str):
    """Validated tracker task id.

    Behaves as a plain string for comparison, hashing and formatting;
    construction raises ``ValueError`` for invalid ids.
    """

    __slots__ = ()

    def __new__(cls, value: str) -> "TaskId":
        return super().__new__(cls, validate_task_id(str(value)))

    def __repr__(self) -> str:
        return f"TaskId({str.__repr__(self)})"


class StatusKind(str, Enum):
    """Status variants understood by the run loop."""
    READY = "ready"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"  # Token not in the tracker vocabulary


_KNOWN_TOKENS = {kind.value: kind for kind in StatusKind if kind is not StatusKind.UNKNOWN}


@dataclass(frozen=True)
class TaskStatus:
    """Tracker status: a known variant, or ``UNKNOWN`` carrying the raw token."""
    kind: StatusKind
    raw: str

    @classmethod
    def of(cls, kind: StatusKind) -> "TaskStatus":
        if kind is StatusKind.UNKNOWN:
            raise ValueError("Unknown statuses must be created with TaskStatus.parse")
        return cls(kind=kind, raw=kind.value)

    @classmethod
    def parse(cls, token: str) -> Optional["TaskStatus"]:
        """Parse a status token; returns None when the token is empty (absent status)."""
        trimmed = token.strip()
        if not trimmed:
            return None
        kind = _KNOWN_TOKENS.get(trimmed)
        if kind is None:
            return cls(kind=StatusKind.UNKNOWN, raw=trimmed)
        return cls(kind=kind, raw=trimmed)

    @classmethod
    def from_output(cls, stdout: str) -> Optional["TaskStatus"]:
        """Parse the first whitespace-delimited token of a status command's output."""
        tokens = stdout.split()
        return cls.parse(tokens[0] if tokens else "")

    def is_ready(self) -> bool:
        return self.kind in (StatusKind.READY, StatusKind.OPEN)

    def is_unknown(self) -> bool:
        return self.kind is StatusKind.UNKNOWN

    def __str__(self) -> str:
        return self.raw


class Phase(str, Enum):
    """Phase of the solve/review cycle, used for log context."""
    SOLVING = "solving"
    REVIEWING = "reviewing"
    ERROR = "error"


def _check_review_loop_limit(value: int) -> int:
    if value < 1:
        raise ValueError(f"must be a positive integer (got {value})")
    return value


# Maximum solve/review passes for one task before forced escalation
ReviewLoopLimit = Annotated[int, AfterValidator(_check_review_loop_limit)]

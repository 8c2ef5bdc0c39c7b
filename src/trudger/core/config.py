"""Configuration loading and validation."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigError
from .task import ReviewLoopLimit, TaskId

logger = logging.getLogger(__name__)

DEFAULT_SKIP_NOT_READY_LIMIT = 5

KNOWN_TOP_LEVEL_KEYS = (
    "agent_command",
    "agent_review_command",
    "commands",
    "hooks",
    "review_loop_limit",
    "log_path",
)


def _require_non_empty(value: Optional[str], label: str) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError(f"{label} must not be empty")
    return value


class NotificationScope(str, Enum):
    """Which lifecycle points fire the notification hook."""
    TASK_BOUNDARIES = "task_boundaries"
    RUN_BOUNDARIES = "run_boundaries"
    ALL_LOGS = "all_logs"


class CommandsConfig(BaseModel):
    """Tracker commands."""
    model_config = ConfigDict(extra="ignore")

    next_task: Optional[str] = None  # May be omitted when manual task ids are given
    task_show: str
    task_status: str
    task_update_in_progress: str
    reset_task: str

    @field_validator("task_show", "task_status", "task_update_in_progress", "reset_task")
    @classmethod
    def validate_required(cls, v: str, info) -> str:
        return _require_non_empty(v, f"commands.{info.field_name}")


class HooksConfig(BaseModel):
    """Hook commands fired at lifecycle points."""
    model_config = ConfigDict(extra="ignore")

    on_completed: str
    on_requires_human: str
    on_doctor_setup: Optional[str] = None  # Accepted for config compatibility; unused by the run loop
    on_notification: Optional[str] = None
    on_notification_scope: NotificationScope = NotificationScope.TASK_BOUNDARIES

    @field_validator("on_completed", "on_requires_human", "on_doctor_setup")
    @classmethod
    def validate_required(cls, v: Optional[str], info) -> Optional[str]:
        return _require_non_empty(v, f"hooks.{info.field_name}")

    @property
    def notification_command(self) -> Optional[str]:
        """Notification hook, or None when unset/blank."""
        if self.on_notification is None or not self.on_notification.strip():
            return None
        return self.on_notification.strip()


class TrudgerConfig(BaseModel):
    """Main trudger configuration."""
    model_config = ConfigDict(extra="ignore")

    agent_command: str
    agent_review_command: str
    commands: CommandsConfig
    hooks: HooksConfig
    review_loop_limit: ReviewLoopLimit
    log_path: Optional[Path] = None

    @field_validator("agent_command", "agent_review_command")
    @classmethod
    def validate_agent_commands(cls, v: str, info) -> str:
        return _require_non_empty(v, info.field_name)

    @field_validator("log_path", mode="before")
    @classmethod
    def empty_log_path_disables_logging(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def next_task_command(self) -> str:
        return (self.commands.next_task or "").strip()


class RuntimeSettings(BaseSettings):
    """Environment overrides read once at startup (TRUDGER_* variables)."""
    model_config = SettingsConfigDict(env_prefix="TRUDGER_", extra="ignore")

    skip_not_ready_limit: int = Field(default=DEFAULT_SKIP_NOT_READY_LIMIT)

    @field_validator("skip_not_ready_limit", mode="before")
    @classmethod
    def fallback_to_default(cls, v: Any) -> int:
        """Unparsable or non-positive values fall back to the default."""
        try:
            parsed = int(str(v).strip())
        except ValueError:
            logger.warning(
                f"Ignoring invalid TRUDGER_SKIP_NOT_READY_LIMIT={v!r}; "
                f"using {DEFAULT_SKIP_NOT_READY_LIMIT}"
            )
            return DEFAULT_SKIP_NOT_READY_LIMIT
        return parsed if parsed >= 1 else DEFAULT_SKIP_NOT_READY_LIMIT


def _reject_nulls(data: Dict[str, Any], _path: str = "") -> None:
    """Explicit nulls are errors, even for optional keys."""
    for key, value in data.items():
        label = f"{_path}.{key}" if _path else str(key)
        if value is None:
            raise ConfigError(f"{label} must not be null")
        if isinstance(value, dict) and key in ("commands", "hooks"):
            _reject_nulls(value, label)


def unknown_top_level_keys(data: Dict[str, Any]) -> List[str]:
    return [str(key) for key in data if key not in KNOWN_TOP_LEVEL_KEYS]


def _format_validation_error(error: ValidationError, config_path: Path) -> str:
    problems = []
    for item in error.errors():
        label = ".".join(str(part) for part in item["loc"])
        if item["type"] == "missing":
            problems.append(f"Missing required config value: {label}")
        else:
            message = item["msg"].removeprefix("Value error, ")
            problems.append(f"{label}: {message}" if label not in message else message)
    return f"Invalid config {config_path}:\n  " + "\n  ".join(problems)


def parse_config(data: Any, config_path: Path) -> TrudgerConfig:
    """Validate an already-parsed YAML document."""
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a YAML mapping")

    if "codex_command" in data:
        raise ConfigError(
            "Migration: codex_command is no longer supported; "
            "use agent_command and agent_review_command."
        )

    for key in unknown_top_level_keys(data):
        logger.warning(f"Unknown config key: {key}")

    _reject_nulls(data)
    data = _expand_env_vars(data)

    try:
        return TrudgerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e, config_path)) from e


def load_config(config_path: Path) -> TrudgerConfig:
    """Load trudger configuration from a YAML file.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config {config_path}: {e}") from e

    return parse_config(data, config_path)


def validate_config(config: TrudgerConfig, manual_tasks: List[TaskId]) -> None:
    """Cross-field checks that depend on the invocation (manual task ids).

    Raises:
        ConfigError: If commands.next_task is empty and no manual tasks were given
    """
    if not config.next_task_command:
        if not manual_tasks:
            raise ConfigError(
                "commands.next_task must not be empty.\n"
                "Migration: add commands.next_task to your config "
                "(required when no manual task IDs)."
            )
        logger.warning(
            "commands.next_task is empty; manual task IDs provided, continuing without next_task."
        )


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} values from the environment.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "hooks.on_completed")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data

"""Shared fixtures for unit tests."""

import logging
from pathlib import Path
from typing import Optional

import pytest

from trudger.core.config import TrudgerConfig
from trudger.core.run_state import RunState
from trudger.utils.rich_logging import attach_transition_file, transitions_logger

from tests.unit.runner_fixtures import ScriptedRunner, TransitionRecorder, make_config


@pytest.fixture(autouse=True)
def restore_trudger_logger():
    """Undo setup_logging() handlers and levels installed by CLI runs."""
    logger = logging.getLogger("trudger")
    handlers, level = logger.handlers[:], logger.level
    yield
    for handler in logger.handlers[:]:
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.setLevel(level)
    attach_transition_file(None)


@pytest.fixture
def transitions():
    recorder = TransitionRecorder()
    logger = transitions_logger()
    logger.addHandler(recorder)
    yield recorder
    logger.removeHandler(recorder)


@pytest.fixture
def runner():
    return ScriptedRunner()


@pytest.fixture
def make_state(tmp_path: Path, runner: ScriptedRunner):
    """Build a RunState around the scripted runner; keyword args override fields."""

    def _make(config: Optional[TrudgerConfig] = None, **overrides) -> RunState:
        fields = dict(
            config=config or make_config(),
            config_path=tmp_path / "trudger.yml",
            runner=runner,
            prompt_solve="solve the task",
            prompt_review="review the task",
            invocation_folder=str(tmp_path),
        )
        fields.update(overrides)
        return RunState(**fields)

    return _make

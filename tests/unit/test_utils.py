from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from subdivision_planner.utils import configure_logging, load_repo_dotenv, resolve_env_file
from subdivision_planner.utils.env import ENV_FILE_VARIABLE


def test_env_file_override_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / "planner.env"
    env_file.write_text("PLANNER_TEST_TOKEN=from-file\n", encoding="utf-8")
    monkeypatch.setenv(ENV_FILE_VARIABLE, str(env_file))
    monkeypatch.delenv("PLANNER_TEST_TOKEN", raising=False)
    load_repo_dotenv.cache_clear()

    try:
        assert resolve_env_file() == env_file
        assert load_repo_dotenv() is True
        assert os.environ["PLANNER_TEST_TOKEN"] == "from-file"
    finally:
        os.environ.pop("PLANNER_TEST_TOKEN", None)
        load_repo_dotenv.cache_clear()


def test_existing_environment_wins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / "planner.env"
    env_file.write_text("PLANNER_TEST_TOKEN=from-file\n", encoding="utf-8")
    monkeypatch.setenv(ENV_FILE_VARIABLE, str(env_file))
    monkeypatch.setenv("PLANNER_TEST_TOKEN", "from-shell")
    load_repo_dotenv.cache_clear()

    try:
        load_repo_dotenv()
        assert os.environ["PLANNER_TEST_TOKEN"] == "from-shell"
    finally:
        load_repo_dotenv.cache_clear()


def test_missing_env_file_is_not_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ENV_FILE_VARIABLE, str(tmp_path / "absent.env"))
    load_repo_dotenv.cache_clear()

    try:
        assert load_repo_dotenv() is False
    finally:
        load_repo_dotenv.cache_clear()


def test_configure_logging_accepts_level_names_without_stacking() -> None:
    name = "subdivision_planner_test_logger"

    logger = configure_logging("debug", name=name)
    configure_logging(logging.WARNING, name=name)

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert not logger.propagate
    with pytest.raises(ValueError):
        configure_logging("chatty", name=name)
    logger.handlers.clear()

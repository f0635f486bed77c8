"""Locating and loading the ``.env`` file that holds API credentials."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE_VARIABLE = "SUBDIVISION_PLANNER_ENV_FILE"
_REPO_ROOT = Path(__file__).resolve().parents[3]


def resolve_env_file() -> Path:
    """``$SUBDIVISION_PLANNER_ENV_FILE`` when set, else ``.env`` at the repository root."""

    override = os.getenv(ENV_FILE_VARIABLE)
    if override:
        return Path(override).expanduser()
    return _REPO_ROOT / ".env"


@lru_cache(maxsize=1)
def load_repo_dotenv() -> bool:
    """Load the env file once; values already in the environment win."""

    env_path = resolve_env_file()
    if not env_path.is_file():
        return False
    return load_dotenv(env_path, override=False)


__all__ = ["ENV_FILE_VARIABLE", "load_repo_dotenv", "resolve_env_file"]

"""Logging and environment helpers."""

from .env import load_repo_dotenv, resolve_env_file
from .logging import configure_logging

__all__ = [
    "configure_logging",
    "load_repo_dotenv",
    "resolve_env_file",
]

"""AI-assisted land subdivision planning: generation, validation, ranking and lifecycle."""

from importlib import import_module
from typing import Any

from .utils.env import load_repo_dotenv

load_repo_dotenv()

__all__ = (
    "config",
    "errors",
    "generation",
    "models",
    "pipeline",
    "planning",
    "progress",
    "utils",
)


def __getattr__(name: str) -> Any:
    if name in __all__:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

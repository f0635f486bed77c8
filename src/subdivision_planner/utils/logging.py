"""Logging setup for the planning pipeline and its CLI."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Iterable, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    name: str = "subdivision_planner",
    propagate: bool = False,
    extra_loggers: Optional[Iterable[str]] = None,
) -> Logger:
    """Attach one stream handler to the package logger and return it.

    Module loggers (``subdivision_planner.*``) inherit the handler. Calling
    this twice does not stack handlers.

    Parameters
    ----------
    level: int | str
        Numeric level or a name such as ``"DEBUG"``.
    extra_loggers: Iterable[str] | None
        Third-party loggers (``httpx``, ``openai``) to route through the same handler.
    """

    numeric = _resolve_level(level)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    targets = [logging.getLogger(name)]
    targets.extend(logging.getLogger(extra) for extra in extra_loggers or ())
    for target in targets:
        if not any(isinstance(existing, logging.StreamHandler) for existing in target.handlers):
            target.addHandler(handler)
        target.setLevel(numeric)
        target.propagate = propagate
    return targets[0]


__all__ = ["LOG_FORMAT", "configure_logging"]

"""
Logging helpers.

rodent logs through the standard ``logging`` package under the ``rodent``
namespace. Callers own the sink: either configure the ``rodent`` logger here,
or hand any ``logging.Logger`` to an ``Address`` and everything done through
that address (directories, transfers) reports there.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, Optional, Union

ROOT_LOGGER_NAME = "rodent"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Front-end severity names mapped onto logging levels.
LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def get_logger(name: str) -> logging.Logger:
    """Return a logger that lives under the ``rodent`` namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    key = level.strip().lower()
    if key in LEVELS:
        return LEVELS[key]
    value = logging.getLevelName(level.strip().upper())
    if isinstance(value, int):
        return value
    raise ValueError(f"Unknown log level: {level!r}")


def configure_logging(
    level: Union[int, str] = "info",
    stream: Optional[IO[str]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to the ``rodent`` logger.

    Calling it again replaces the handlers installed by a previous call.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolve_level(level))
    for handler in list(logger.handlers):
        if getattr(handler, "_rodent_handler", False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(formatter)
    console._rodent_handler = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler._rodent_handler = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    return logger


__all__ = ["get_logger", "configure_logging", "resolve_level", "LEVELS", "ROOT_LOGGER_NAME"]

"""Logging utilities for dualqp.

All package loggers live below the ``dualqp`` namespace and write to stderr.
The initial level is read from the ``DUALQP_LOG_LEVEL`` environment variable
(default ``WARNING``); the solver reports step decisions at DEBUG and
non-proper terminations at WARNING.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import IO, Iterator, Optional

NAMESPACE = "dualqp"
DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_LEVEL_ENV_VAR = "DUALQP_LOG_LEVEL"


def _parse_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return int(level)


_default_level: int = _parse_level(os.getenv(_LEVEL_ENV_VAR, "WARNING"))

# Loggers handed out so far, keyed by their full dotted name.
_loggers: dict[str, logging.Logger] = {}


def _attach_handler(
    logger: logging.Logger,
    level: int,
    stream: Optional[IO[str]] = None,
    format_string: str = DEFAULT_FORMAT,
) -> None:
    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger for ``name``.

    Args:
        name: Usually ``__name__`` of the calling module. Names outside the
            ``dualqp`` namespace are nested below it; ``None`` returns the
            namespace logger itself.

    Returns:
        A cached :class:`logging.Logger` with a single stderr handler.

    Example:
        >>> from dualqp.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.debug("Starting dual active-set solve")
    """
    if name is None or name == NAMESPACE:
        full_name = NAMESPACE
    elif name.startswith(NAMESPACE + "."):
        full_name = name
    else:
        full_name = f"{NAMESPACE}.{name}"

    cached = _loggers.get(full_name)
    if cached is not None:
        return cached

    logger = logging.getLogger(full_name)
    if not logger.handlers:
        logger.setLevel(_default_level)
        _attach_handler(logger, _default_level)
        logger.propagate = False
    _loggers[full_name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Set the level of every dualqp logger, including ones created later.

    Args:
        level: A :mod:`logging` level or its name (``"DEBUG"``, ``"INFO"``...).
            Unknown names fall back to ``WARNING``.
    """
    global _default_level
    _default_level = _parse_level(level)
    for logger in _loggers.values():
        logger.setLevel(_default_level)
        for handler in logger.handlers:
            handler.setLevel(_default_level)


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Replace the handlers of all dualqp loggers.

    Typically called once at application start-up.

    Args:
        level: Logging level (default: WARNING).
        format_string: Record format; ``DEFAULT_FORMAT`` when omitted.
        stream: Output stream (default: ``sys.stderr``).

    Example:
        >>> import logging
        >>> from dualqp.logging import configure_logging
        >>> configure_logging(level=logging.DEBUG)
    """
    global _default_level
    _default_level = _parse_level(level)
    fmt = DEFAULT_FORMAT if format_string is None else format_string
    for logger in _loggers.values():
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.setLevel(_default_level)
        _attach_handler(logger, _default_level, stream=stream, format_string=fmt)


@contextmanager
def log_level(level: int | str) -> Iterator[None]:
    """Temporarily change the level of all dualqp loggers.

    Example:
        >>> import logging
        >>> from dualqp.logging import log_level
        >>> with log_level(logging.DEBUG):
        ...     pass
    """
    previous = _default_level
    set_log_level(level)
    try:
        yield
    finally:
        set_log_level(previous)


__all__ = [
    "DEFAULT_FORMAT",
    "NAMESPACE",
    "configure_logging",
    "get_logger",
    "log_level",
    "set_log_level",
]

"""
Logging setup for caskctl.

``caskctl.main`` calls :func:`setup_logging` once, before any command
runs; every module logs through ``logging.getLogger(__name__)``.

Console level: ``--debug`` > ``--verbose`` > ``--quiet`` >
``CASKCTL_LOG_LEVEL`` > WARNING.  A log file (``CASKCTL_LOG_FILE``) can
run at its own level (``CASKCTL_LOG_FILE_LEVEL``).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "CASKCTL_LOG_LEVEL"
ENV_FILE = "CASKCTL_LOG_FILE"
ENV_FILE_LEVEL = "CASKCTL_LOG_FILE_LEVEL"

# (ceiling level, format, datefmt); the first row whose ceiling covers
# the console level wins
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(name)s: %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = logging.Formatter(
    "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def resolve_level(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    for flag, name in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if flag:
            return name
    return os.environ.get(ENV_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with caskctl's.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Also append records to this file.
        log_file_level: Level for the file; ``level`` when omitted.
    """
    console_level = _level_number(level)
    handlers: list[logging.Handler] = [_console_handler(console_level)]

    if log_file:
        file_level = _level_number(log_file_level) if log_file_level else console_level
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(_FILE_FORMAT)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # the most verbose handler decides what reaches the handlers at all
    root.setLevel(min(h.level for h in handlers))

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for ceiling, f, d in _CONSOLE_FORMATS if level <= ceiling)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _level_number(name: str | None) -> int:
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING

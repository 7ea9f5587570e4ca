"""
Logging configuration: process diagnostics for the CLI.

``setup_logging`` runs once when the click group starts; modules only
ever call ``logging.getLogger(__name__)``.

This is separate from the per-target audit trail
(.variantctl/install.log), which InstallLogger writes no matter how
diagnostics are configured.

Console level, highest precedence first:
    --debug, --verbose, --quiet, $VARIANTCTL_LOG_LEVEL, WARNING

A second, file-backed handler is added when $VARIANTCTL_LOG_FILE is set
(level from $VARIANTCTL_LOG_FILE_LEVEL, else the console level).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "VARIANTCTL_LOG_LEVEL"
ENV_LOG_FILE = "VARIANTCTL_LOG_FILE"
ENV_LOG_FILE_LEVEL = "VARIANTCTL_LOG_FILE_LEVEL"

# (max level, format, datefmt); first row whose level is >= the
# console level wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(process)d %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Console level name for the given CLI flags."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """(Re)configure the root logger.

    Args:
        level: Console level name.
        log_file: Extra log file (default ``$VARIANTCTL_LOG_FILE``).
        log_file_level: Level for ``log_file`` (default
            ``$VARIANTCTL_LOG_FILE_LEVEL``, then ``level``).
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_LOG_FILE) or None
    log_file_level = log_file_level or os.environ.get(ENV_LOG_FILE_LEVEL) or None

    handlers: list[logging.Handler] = [_console_handler(console_level)]
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # The root must let through whatever the most verbose handler wants
    root.setLevel(min(h.level for h in handlers))

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for limit, f, d in _CONSOLE_FORMATS if level <= limit)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    """Numeric level for a level name; unknown names mean WARNING."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING

"""
Logging setup for the infraplane CLI.

``setup_logging()`` runs once from main.py; modules log through
``logging.getLogger(__name__)``.

    console  stderr, so --json output on stdout stays parseable.
             Level: CLI flag > INFRAPLANE_LOG_LEVEL > WARNING.
    file     optional (INFRAPLANE_LOG_FILE), rotated, and every record is
             tagged with the operation id of the apply, destroy or
             bootstrap it belongs to: ``grep op-20250101-... infraplane.log``
             pulls one run out of a long file.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
import os
import sys
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler

ENV_LEVEL = "INFRAPLANE_LOG_LEVEL"
ENV_FILE = "INFRAPLANE_LOG_FILE"
ENV_FILE_LEVEL = "INFRAPLANE_LOG_FILE_LEVEL"

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

NO_OPERATION = "-"

_operation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "infraplane_operation_id", default=NO_OPERATION,
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(operation_id)s] %(name)s:%(lineno)d %(message)s"


def _console_formatter(level: int) -> logging.Formatter:
    if level <= logging.DEBUG:
        return logging.Formatter(
            "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"
        )
    if level <= logging.INFO:
        return logging.Formatter("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S")
    return logging.Formatter("%(message)s")


class OperationFilter(logging.Filter):
    """Stamp each record with the operation id active when it was logged."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = _operation_id.get()
        return True


@contextlib.contextmanager
def operation_context(operation_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``operation_id``."""
    token = _operation_id.set(operation_id)
    try:
        yield
    finally:
        _operation_id.reset(token)


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def _parse_level(level: str | None, default: int = logging.WARNING) -> int:
    numeric = logging.getLevelName(level.upper()) if level else default
    return numeric if isinstance(numeric, int) else default


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, if configured, the log file.

    Args:
        level: Console level name. Unknown names fall back to WARNING.
        log_file: Log file path (default: $INFRAPLANE_LOG_FILE).
        log_file_level: File level (default: $INFRAPLANE_LOG_FILE_LEVEL,
            else the console level).
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_FILE_LEVEL)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level, default=console_level)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.addFilter(OperationFilter())
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, "%Y-%m-%d %H:%M:%S"))
        root.addHandler(file_handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

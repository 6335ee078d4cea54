"""Logger factory whose debug output is switched on by the DEBUG variable."""

from __future__ import annotations

import fnmatch
import logging
import os
import sys

_ROOT_NAME = "mediasoup"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}

_LEVEL_TAGS = {
    logging.DEBUG: "DBG",
    logging.INFO: "INF",
    logging.WARNING: "WRN",
    logging.ERROR: "ERR",
    logging.CRITICAL: "FTL",
}
_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[33m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[31m",
    logging.ERROR: "\x1b[1m\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[31m",
}
_RESET = "\x1b[0m"


class _ConsoleFormatter(logging.Formatter):
    """Single-line console format: time, level, caller, scope and message."""

    def __init__(self, color: bool) -> None:
        super().__init__(datefmt=_TIME_FORMAT)
        self._color = color

    def format(self, record: logging.LogRecord) -> str:
        tag = _LEVEL_TAGS.get(record.levelno, record.levelname[:3].upper())
        if self._color:
            tag = f"{_LEVEL_COLORS.get(record.levelno, '')}{tag}{_RESET}"
        stamp = f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d}"
        scope = record.name.partition(".")[2] or record.name
        line = f"{stamp} {tag} {record.filename}:{record.lineno} > {scope}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _root_logger() -> logging.Logger:
    root = logging.getLogger(_ROOT_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_ConsoleFormatter(os.environ.get("DEBUG_COLORS", "") in _TRUE_VALUES))
        root.addHandler(handler)
        root.propagate = False
    return root


def should_debug(scope: str, debug: str) -> bool:
    """Tell whether ``scope`` is selected by a comma separated list of glob patterns.

    A pattern prefixed with ``-`` deselects; the last matching pattern wins.
    """
    selected = False
    for raw in debug.split(","):
        pattern = raw.strip()
        if not pattern:
            continue
        wanted = not pattern.startswith("-")
        if not wanted:
            pattern = pattern[1:]
        if fnmatch.fnmatchcase(scope, pattern):
            selected = wanted
    return selected


def new_logger(scope: str) -> logging.Logger:
    """Return the logger for ``scope``, at debug level if DEBUG selects it."""
    _root_logger()
    logger = logging.getLogger(f"{_ROOT_NAME}.{scope}")
    debug = should_debug(scope, os.environ.get("DEBUG", ""))
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger
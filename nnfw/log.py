"""NNFW logging.

Every module logs through ``get_logger(__name__)``, which hangs its logger
under ``nnfw``.  The level comes from ``NNFW_LOG_LEVEL`` (default WARNING).
"""

import logging
import os
import sys

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}


class _LevelColorFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        color = _LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{color}{record.levelname}\033[0m"
        return super().format(record)


def _setup_root() -> logging.Logger:
    root = logging.getLogger("nnfw")
    if root.handlers:
        return root
    level = os.environ.get("NNFW_LOG_LEVEL", "WARNING").upper()
    root.setLevel(getattr(logging, level, logging.WARNING))
    handler = logging.StreamHandler(sys.stderr)
    fmt = "%(levelname)s %(name)s: %(message)s"
    tty = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    handler.setFormatter(_LevelColorFormatter(fmt) if tty else logging.Formatter(fmt))
    root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for `name` (usually ``__name__``) under the ``nnfw`` hierarchy."""
    _setup_root()
    if name == "nnfw" or name.startswith("nnfw."):
        return logging.getLogger(name)
    return logging.getLogger(f"nnfw.{name}")

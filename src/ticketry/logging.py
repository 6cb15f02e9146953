"""Structured JSON logging for ticketry.

Records go to ``.ticketry/ticketry.log`` as one JSON object per line, rotated
at 5MB with 3 backups. Both the CLI and the dashboard write one record per
command or request through ``log_command``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "ticketry"
_LOG_FILENAME = "ticketry.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

# LogRecord attribute -> JSON key
_EXTRA_KEYS = {
    "command": "command",
    "args_data": "args",
    "status": "status",
    "duration_ms": "duration_ms",
    "error": "error",
}


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_KEYS.items():
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(ticketry_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach the JSONL file handler for *ticketry_dir* to the ``ticketry`` logger.

    Calling it again with the same directory is a no-op; a different
    directory replaces the previous handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = ticketry_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(str(log_path), maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger


@contextmanager
def log_command(command: str, args: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
    """Log one structured record for a command, with its duration and outcome.

    The yielded dict may be updated with extra fields (e.g. ``status``)
    before the block ends. Setting ``error`` in it, or raising, logs the
    record at WARNING instead of INFO. Exceptions are re-raised.
    """
    logger = logging.getLogger(LOGGER_NAME)
    extra: dict[str, Any] = {"command": command, "args_data": args or {}}
    start = time.monotonic()
    try:
        yield extra
    except Exception as exc:
        extra["error"] = f"{type(exc).__name__}: {exc}"
        raise
    finally:
        extra["duration_ms"] = round((time.monotonic() - start) * 1000, 1)
        if "error" in extra:
            logger.warning("%s failed", command, extra=extra)
        else:
            logger.info("%s", command, extra=extra)

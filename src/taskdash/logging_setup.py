# src/taskdash/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Background pollers log every few seconds; the console only sees their warnings.
QUIET_LOGGERS = ("taskdash.remote.rest_store", "taskdash.core.streams")


class _ConsoleNoiseFilter(logging.Filter):
    """Console: taskdash logs (pollers at WARNING+), anything else at ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(QUIET_LOGGERS):
            return record.levelno >= logging.WARNING
        if record.name == "taskdash" or record.name.startswith("taskdash."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskdash",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Filtered console output plus a full log file at <log_dir>/taskdash.log.

    Replaces existing root handlers, so calling it again does not duplicate
    output. Returns the log file path.
    """
    log_file = Path(log_dir) / "taskdash.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    file = logging.FileHandler(log_file, encoding="utf-8")
    file.setLevel(file_level)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in (console, file):
        handler.setFormatter(fmt)
        root.addHandler(handler)
    root.setLevel(min(console_level, file_level))

    # httpx logs one INFO line per request; the poller alone would flood the file.
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file

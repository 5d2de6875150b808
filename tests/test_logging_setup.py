# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskdash.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("taskdash.core.view_model", logging.INFO, True),
        ("taskdash.cli.main", logging.DEBUG, True),
        ("taskdash.remote.rest_store", logging.INFO, False),
        ("taskdash.remote.rest_store", logging.WARNING, True),
        ("taskdash.core.streams", logging.DEBUG, False),
        ("taskdash.remote.auth", logging.INFO, True),
        ("httpx", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
        ("taskdashboard", logging.INFO, False),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_setup_logging_writes_file_and_replaces_handlers(tmp_path: Path, restore_root_logger) -> None:
    setup_logging(log_dir=tmp_path / "logs")
    log_file = setup_logging(log_dir=tmp_path / "logs")

    root = logging.getLogger()
    assert len(root.handlers) == 2
    assert logging.getLogger("httpx").level == logging.WARNING

    logging.getLogger("taskdash.test").debug("hello file")
    for h in root.handlers:
        h.flush()
    assert log_file == tmp_path / "logs" / "taskdash.log"
    assert "hello file" in log_file.read_text(encoding="utf-8")

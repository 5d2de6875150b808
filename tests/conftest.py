# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdash.core.state import AppState
from taskdash.core.view_model import TaskViewModel
from taskdash.tasks.task_models import Principal

from .fakes import ConfirmRecorder, FakeSessionProvider, FakeStoreClient, StepClock


@pytest.fixture()
def principal() -> Principal:
    return Principal(id="user-1", email="ada@example.com")


@pytest.fixture()
def store() -> FakeStoreClient:
    return FakeStoreClient()


@pytest.fixture()
def session(principal: Principal) -> FakeSessionProvider:
    return FakeSessionProvider(principal)


@pytest.fixture()
def confirm() -> ConfirmRecorder:
    return ConfirmRecorder(answer=True)


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def vm(store: FakeStoreClient, session: FakeSessionProvider, confirm: ConfirmRecorder, clock: StepClock) -> TaskViewModel:
    """View model wired to in-memory fakes. Tests call `await vm.start()` themselves."""
    return TaskViewModel(store, session, confirm_delete=confirm, clock=clock)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskdash-test",
        backend="sqlite",
        tasks_table="tasks",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
    )


@pytest.fixture()
def state(settings: SimpleNamespace, store: FakeStoreClient, session: FakeSessionProvider, vm: TaskViewModel) -> AppState:
    return AppState(settings=settings, store=store, session=session, view_model=vm)

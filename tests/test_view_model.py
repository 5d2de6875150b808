# tests/test_view_model.py

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from taskdash.core.ports import ChangeEvent, ChangeKind, Eq
from taskdash.core.view_model import DeleteResult, LoadState, TaskViewModel
from taskdash.errors import ErrorKind, TransportError
from taskdash.tasks.task_models import Principal, TaskDraft, TaskPriority, TaskStatus, to_wire_ts

from .fakes import ConfirmRecorder, FakeSessionProvider, FakeStoreClient, StepClock, drain


def _titles(vm: TaskViewModel) -> list[str]:
    return [t.title for t in vm.tasks]


@pytest.mark.asyncio
async def test_start_loads_newest_first_and_subscribes(vm, store: FakeStoreClient) -> None:
    store.seed("old", created_at=datetime(2024, 1, 1, tzinfo=UTC))
    store.seed("new", created_at=datetime(2024, 3, 1, tzinfo=UTC))
    store.seed("mid", created_at=datetime(2024, 2, 1, tzinfo=UTC))

    await vm.start()

    assert vm.status is LoadState.SYNCED
    assert vm.error is None
    assert _titles(vm) == ["new", "mid", "old"]
    assert vm.subscribed
    assert len(store.ops("subscribe")) == 1


@pytest.mark.asyncio
async def test_no_session_refuses_to_dispatch(store: FakeStoreClient, confirm, clock) -> None:
    vm = TaskViewModel(store, FakeSessionProvider(None), confirm_delete=confirm, clock=clock)
    await vm.start()
    assert vm.status is LoadState.NO_SESSION

    assert await vm.load() is False
    assert vm.error is ErrorKind.AUTH
    assert await vm.create(TaskDraft(title="x")) is False
    assert await vm.update(1, {"title": "y"}) is False
    assert await vm.delete(1) is DeleteResult.FAILED

    assert store.calls == []
    assert confirm.asked == []


@pytest.mark.asyncio
async def test_create_becomes_visible_only_after_notification(
    vm, store: FakeStoreClient, principal: Principal
) -> None:
    store.seed("existing")
    await vm.start()
    before = {t.id for t in vm.tasks}

    draft = TaskDraft(
        title="Write tests",
        description="cover the view model",
        priority=TaskPriority.HIGH,
        tags=["qa"],
    )
    assert await vm.create(draft) is True

    # No optimistic insert: the pump has not run yet.
    assert {t.id for t in vm.tasks} == before

    await drain()

    new = [t for t in vm.tasks if t.id not in before]
    assert len(new) == 1
    task = new[0]
    assert task.title == "Write tests"
    assert task.description == "cover the view model"
    assert task.status is TaskStatus.PENDING
    assert task.priority is TaskPriority.HIGH
    assert task.tags == ("qa",)
    assert task.created_by == principal.id
    assert task.created_at == task.updated_at
    assert task.id == 2


@pytest.mark.asyncio
async def test_create_blank_title_is_rejected_before_dispatch(vm, store: FakeStoreClient) -> None:
    await vm.start()

    assert await vm.create(TaskDraft(title="   ")) is False

    assert vm.error is ErrorKind.VALIDATION
    assert store.ops("insert") == []


@pytest.mark.asyncio
async def test_update_absent_id_is_noop_without_error(vm, store: FakeStoreClient) -> None:
    store.seed("only")
    await vm.start()
    before = vm.snapshot()

    assert await vm.update(999, {"status": "completed"}) is True
    await drain()

    assert vm.error is None
    assert vm.snapshot() == before
    assert len(store.ops("update")) == 1


@pytest.mark.asyncio
async def test_update_stamps_updated_at_and_targets_id(vm, store: FakeStoreClient, clock: StepClock) -> None:
    task_id = store.seed("ship it")
    await vm.start()

    assert await vm.update(task_id, {"status": "completed", "priority": "urgent"}) is True

    _, table, flt, changes = store.ops("update")[-1]
    assert table == "tasks"
    assert flt == Eq("id", task_id)
    assert changes["status"] == "completed"
    assert changes["priority"] == "urgent"
    assert changes["updated_at"] == to_wire_ts(clock.now)

    await drain()
    task = vm.get(task_id)
    assert task is not None
    assert task.status is TaskStatus.COMPLETED
    assert task.updated_at == clock.now


@pytest.mark.asyncio
async def test_update_with_unknown_status_never_reaches_store(vm, store: FakeStoreClient) -> None:
    task_id = store.seed("t")
    await vm.start()

    assert await vm.update(task_id, {"status": "archived"}) is False
    assert vm.error is ErrorKind.VALIDATION
    assert store.ops("update") == []


@pytest.mark.asyncio
async def test_delete_without_confirmation_does_not_call_store(vm, store: FakeStoreClient, confirm) -> None:
    task_id = store.seed("keep me")
    await vm.start()
    confirm.answer = False

    assert await vm.delete(task_id) is DeleteResult.DECLINED
    await drain()

    assert store.ops("delete") == []
    assert confirm.asked and confirm.asked[0][0] == task_id
    assert confirm.asked[0][1] is not None and confirm.asked[0][1].title == "keep me"
    assert _titles(vm) == ["keep me"]
    assert vm.error is None


@pytest.mark.asyncio
async def test_confirmed_delete_removes_task_after_sync(vm, store: FakeStoreClient) -> None:
    task_id = store.seed("drop me")
    await vm.start()

    assert await vm.delete(task_id) is DeleteResult.DELETED
    assert store.ops("delete") == [("delete", "tasks", Eq("id", task_id))]
    await drain()

    assert vm.tasks == []


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_snapshot(vm, store: FakeStoreClient) -> None:
    store.seed("a")
    await vm.start()
    before = vm.tasks

    store.seed("b")
    store.fail("select", TransportError("network down"))
    assert await vm.load() is False

    assert vm.tasks == before
    assert vm.status is LoadState.SYNCED
    assert vm.error is ErrorKind.TRANSPORT
    assert "network down" in (vm.error_message or "")

    # Manual retry clears the error.
    assert await vm.load() is True
    assert vm.error is None
    assert sorted(_titles(vm)) == ["a", "b"]


@pytest.mark.asyncio
async def test_unexpected_store_exception_is_classified_as_transport(vm, store: FakeStoreClient) -> None:
    await vm.start()
    store.fail("insert", RuntimeError("socket closed"))

    assert await vm.create(TaskDraft(title="x")) is False
    assert vm.error is ErrorKind.TRANSPORT


@pytest.mark.asyncio
async def test_row_with_unknown_status_fails_the_load(vm, store: FakeStoreClient) -> None:
    store.seed("fine")
    await vm.start()

    store.seed("broken", status="archived")
    assert await vm.load() is False

    assert vm.error is ErrorKind.TRANSPORT
    assert _titles(vm) == ["fine"]


@pytest.mark.asyncio
async def test_concurrent_loads_last_to_complete_wins(vm, store: FakeStoreClient) -> None:
    store.seed("a")
    await vm.start()

    gate_a = store.gate("select")
    gate_b = store.gate("select")

    load_a = asyncio.create_task(vm.load())
    await drain()
    store.seed("b", created_at=datetime(2024, 5, 1, tzinfo=UTC))
    load_b = asyncio.create_task(vm.load())
    await drain()

    gate_b.set()
    assert await load_b is True
    assert _titles(vm) == ["b", "a"]

    gate_a.set()
    assert await load_a is True
    # A was issued first but completed last: its (older) result wins.
    assert _titles(vm) == ["a"]


@pytest.mark.asyncio
async def test_late_notification_after_unsubscribe_is_ignored(vm, store: FakeStoreClient) -> None:
    store.seed("a")
    await vm.start()
    stream = store.streams[0]

    await vm.unsubscribe()
    assert not vm.subscribed
    selects_before = len(store.ops("select"))

    store.seed("sneaky")
    assert stream.push(ChangeEvent(table="tasks", kind=ChangeKind.INSERT)) is False
    assert store.emit(ChangeKind.INSERT) == 0
    await drain()

    assert _titles(vm) == ["a"]
    assert len(store.ops("select")) == selects_before


@pytest.mark.asyncio
async def test_unsubscribe_cancels_resync_already_in_flight(vm, store: FakeStoreClient) -> None:
    store.seed("a")
    await vm.start()

    gate = store.gate("select")
    store.seed("b")
    store.emit(ChangeKind.INSERT)
    await drain()  # resync load is now parked on the gate

    await vm.unsubscribe()
    gate.set()
    await drain()

    assert _titles(vm) == ["a"]


@pytest.mark.asyncio
async def test_sign_out_tears_down_exactly_once(vm, store: FakeStoreClient, session: FakeSessionProvider) -> None:
    store.seed("a")
    await vm.start()
    stream = store.streams[0]

    await session.sign_out()

    assert vm.status is LoadState.NO_SESSION
    assert vm.tasks == []
    assert stream.closed
    assert store.unsubscribe_calls == 1

    await vm.unsubscribe()
    await vm.close()
    assert store.unsubscribe_calls == 1


@pytest.mark.asyncio
async def test_sign_in_again_starts_a_fresh_session(
    vm, store: FakeStoreClient, session: FakeSessionProvider
) -> None:
    store.seed("a")
    await vm.start()
    await session.sign_out()

    await session.sign_in(Principal(id="user-2", email="bob@example.com"))

    assert vm.status is LoadState.SYNCED
    assert vm.principal is not None and vm.principal.id == "user-2"
    assert _titles(vm) == ["a"]
    assert len(store.ops("subscribe")) == 2


@pytest.mark.asyncio
async def test_late_crud_completion_after_sign_out_is_discarded(
    vm, store: FakeStoreClient, session: FakeSessionProvider
) -> None:
    await vm.start()

    gate = store.gate("insert")
    store.fail("insert", TransportError("too late"))
    pending = asyncio.create_task(vm.create(TaskDraft(title="late")))
    await drain()

    await session.sign_out()
    gate.set()

    assert await pending is False
    assert vm.error is None
    assert vm.status is LoadState.NO_SESSION
    assert vm.tasks == []


@pytest.mark.asyncio
async def test_late_successful_write_does_not_repopulate_ended_session(
    vm, store: FakeStoreClient, session: FakeSessionProvider
) -> None:
    await vm.start()

    gate = store.gate("insert")
    pending = asyncio.create_task(vm.create(TaskDraft(title="late")))
    await drain()
    await session.sign_out()
    gate.set()
    await pending
    await drain()

    assert len(store.rows) == 1
    assert vm.tasks == []


@pytest.mark.asyncio
async def test_listeners_see_remote_resyncs(vm, store: FakeStoreClient) -> None:
    seen: list[tuple[str, int]] = []
    vm.add_listener(lambda snap, reason: seen.append((reason, len(snap.tasks))))
    await vm.start()

    store.seed("from elsewhere")
    store.emit(ChangeKind.INSERT)
    await drain()

    assert ("resync", 1) in seen


@pytest.mark.asyncio
async def test_derived_view_and_counts_follow_collection(vm, store: FakeStoreClient) -> None:
    from taskdash.tasks.task_filter import FilterState

    store.seed("Write docs", status="pending", priority="high")
    store.seed("Review", status="completed", priority="low", description="read the DOCS")
    await vm.start()

    assert [t.title for t in vm.derived_view(FilterState(search="docs"))] == ["Write docs", "Review"]
    assert [t.title for t in vm.derived_view(FilterState(status="completed"))] == ["Review"]
    counts = vm.status_counts()
    assert counts[TaskStatus.PENDING] == 1
    assert counts[TaskStatus.COMPLETED] == 1
    assert counts[TaskStatus.BLOCKED] == 0


@pytest.mark.asyncio
async def test_confirmation_crash_counts_as_declined(store: FakeStoreClient, session, clock) -> None:
    async def broken_confirm(task_id, task):
        raise RuntimeError("no tty")

    vm = TaskViewModel(store, session, confirm_delete=broken_confirm, clock=clock)
    task_id = store.seed("x")
    await vm.start()

    assert await vm.delete(task_id) is DeleteResult.DECLINED
    assert store.ops("delete") == []


@pytest.mark.asyncio
async def test_subscribe_failure_still_loads(store: FakeStoreClient, session, clock) -> None:
    store.seed("a")
    store.fail("subscribe", TransportError("no realtime"))
    vm = TaskViewModel(store, session, confirm_delete=ConfirmRecorder(), clock=clock)

    await vm.start()

    assert not vm.subscribed
    assert _titles(vm) == ["a"]
    # The successful load clears the subscribe error.
    assert vm.error is None


@pytest.mark.asyncio
async def test_delete_of_absent_id_reports_not_found(vm, store: FakeStoreClient) -> None:
    store.seed("a")
    await vm.start()

    assert await vm.delete(404) is DeleteResult.NOT_FOUND
    assert vm.error is None
    assert len(store.ops("delete")) == 1


@pytest.mark.asyncio
async def test_failed_delete_sets_error_every_time(vm, store: FakeStoreClient) -> None:
    task_id = store.seed("a")
    await vm.start()

    for _ in range(2):
        store.fail("delete", TransportError("HTTP 500: boom"))
        assert await vm.delete(task_id) is DeleteResult.FAILED
        assert vm.error is ErrorKind.TRANSPORT


@pytest.mark.asyncio
async def test_non_integer_id_is_a_validation_error(vm, store: FakeStoreClient, confirm) -> None:
    await vm.start()

    assert await vm.update("seven", {"status": "completed"}) is False  # type: ignore[arg-type]
    assert vm.error is ErrorKind.VALIDATION
    assert await vm.delete("seven") is DeleteResult.FAILED  # type: ignore[arg-type]
    assert vm.error is ErrorKind.VALIDATION

    assert store.ops("update") == []
    assert store.ops("delete") == []
    assert confirm.asked == []

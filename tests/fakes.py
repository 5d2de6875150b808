# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from taskdash.core.ports import ALL_CHANGES, ChangeEvent, ChangeKind, ChangeStream, Eq, Order, Row
from taskdash.core.session import BaseSessionProvider
from taskdash.core.streams import QueueChangeStream
from taskdash.tasks.task_models import Principal, Task, to_wire_ts


class FakeStoreClient:
    """
    In-memory StoreClient used by view model tests.

    - assigns ids like a server would
    - records every call for assertions
    - pushes a change event to open streams after each write that touches rows
    - gate(op) makes the next `op` call wait until the returned Event is set
    - fail(op, exc) makes the next `op` call raise exc (after its gate, if any)

    select() takes its snapshot when called, before waiting on a gate, so a
    gated select returns the data as it was when it was issued.
    """

    def __init__(self, table: str = "tasks") -> None:
        self.table = table
        self.rows: dict[int, Row] = {}
        self.next_id = 1
        self.calls: list[tuple[Any, ...]] = []
        self.streams: list[QueueChangeStream] = []
        self.unsubscribe_calls = 0
        self.auto_notify = True
        self._gates: dict[str, list[asyncio.Event]] = {}
        self._failures: dict[str, Exception] = {}

    # ---- test helpers ----

    def seed(self, title: str, *, created_at: datetime | None = None, **fields: Any) -> int:
        ts = to_wire_ts(created_at or datetime(2024, 1, 1, tzinfo=UTC))
        row: Row = {
            "id": self.next_id,
            "title": title,
            "status": "pending",
            "priority": "medium",
            "created_at": ts,
            "updated_at": ts,
            "description": None,
            "tags": [],
        }
        row.update(fields)
        self.rows[self.next_id] = row
        self.next_id += 1
        return row["id"]

    def gate(self, op: str) -> asyncio.Event:
        ev = asyncio.Event()
        self._gates.setdefault(op, []).append(ev)
        return ev

    def fail(self, op: str, exc: Exception) -> None:
        self._failures[op] = exc

    def emit(self, kind: ChangeKind = ChangeKind.UPDATE) -> int:
        event = ChangeEvent(table=self.table, kind=kind)
        return sum(1 for s in self.streams if s.push(event))

    def ops(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    async def _enter(self, op: str) -> None:
        gates = self._gates.get(op)
        if gates:
            await gates.pop(0).wait()
        exc = self._failures.pop(op, None)
        if exc is not None:
            raise exc

    def _notify(self, kind: ChangeKind) -> None:
        if self.auto_notify:
            self.emit(kind)

    # ---- StoreClient ----

    async def select(self, table: str, filter: Eq | None = None, order: Order | None = None) -> list[Row]:
        self.calls.append(("select", table, filter, order))
        rows = [dict(r) for r in self.rows.values()]
        if filter is not None:
            rows = [r for r in rows if r.get(filter.column) == filter.value]
        if order is not None:
            rows.sort(key=lambda r: r.get(order.column) or "", reverse=order.descending)
        await self._enter("select")
        return rows

    async def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        payload = [dict(r) for r in rows]
        self.calls.append(("insert", table, payload))
        await self._enter("insert")
        for row in payload:
            row["id"] = self.next_id
            self.rows[self.next_id] = row
            self.next_id += 1
        if payload:
            self._notify(ChangeKind.INSERT)
        return len(payload)

    async def update(self, table: str, filter: Eq, changes: Mapping[str, Any]) -> int:
        self.calls.append(("update", table, filter, dict(changes)))
        await self._enter("update")
        hit = [r for r in self.rows.values() if r.get(filter.column) == filter.value]
        for row in hit:
            row.update(changes)
        if hit:
            self._notify(ChangeKind.UPDATE)
        return len(hit)

    async def delete(self, table: str, filter: Eq) -> int:
        self.calls.append(("delete", table, filter))
        await self._enter("delete")
        ids = [k for k, r in self.rows.items() if r.get(filter.column) == filter.value]
        for k in ids:
            del self.rows[k]
        if ids:
            self._notify(ChangeKind.DELETE)
        return len(ids)

    async def subscribe(self, table: str, events: Iterable[ChangeKind] = ALL_CHANGES) -> ChangeStream:
        self.calls.append(("subscribe", table))
        await self._enter("subscribe")
        stream = QueueChangeStream(table, events)
        self.streams.append(stream)
        return stream

    async def unsubscribe(self, stream: ChangeStream) -> None:
        self.calls.append(("unsubscribe",))
        self.unsubscribe_calls += 1
        await stream.close()

    async def close(self) -> None:
        for s in self.streams:
            await s.close()


class FakeSessionProvider(BaseSessionProvider):
    """Session provider driven directly by tests."""

    def __init__(self, principal: Principal | None = None) -> None:
        super().__init__()
        self._principal = principal

    async def sign_in(self, principal: Principal) -> Principal:
        await self._set_principal(principal)
        return principal


class ConfirmRecorder:
    """Stand-in for the interactive y/N prompt."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.asked: list[tuple[int, Task | None]] = []

    async def __call__(self, task_id: int, task: Task | None) -> bool:
        self.asked.append((task_id, task))
        return self.answer


class StepClock:
    """Deterministic clock: each call is one second after the previous one."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


async def drain(rounds: int = 20) -> None:
    """Let spawned tasks (change pump, resync loads) run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)

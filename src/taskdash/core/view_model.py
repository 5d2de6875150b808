# src/taskdash/core/view_model.py

"""
Task view model.

Keeps an eventually-consistent, in-memory mirror of the principal's tasks and
mediates every write to the store.

Key invariants:
- the collection is only ever replaced as a whole by a completed load(),
  never patched; local writes become visible through the next load
  (usually triggered by the change notification they cause),
- loads may complete out of order: the last one to complete wins,
- every operation is tagged with the session generation it started in;
  completions from an ended session are dropped,
- once the change stream is torn down, no notification can trigger a load,
- errors (auth/transport/validation) never escape: they become the
  error signal on snapshot().
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..errors import AuthError, ErrorKind, TaskDashError, TransportError, ValidationError
from ..tasks.task_filter import FilterState, filter_tasks, status_counts
from ..tasks.task_models import (
    Principal,
    Task,
    TaskDraft,
    TaskStatus,
    normalize_changes,
    task_from_row,
    to_wire_ts,
    utc_now,
)
from .ports import ALL_CHANGES, ChangeStream, ConfirmDelete, Eq, Order, SessionProvider, StoreClient

logger = logging.getLogger(__name__)


class LoadState(StrEnum):
    NO_SESSION = "no_session"
    LOADING = "loading"
    SYNCED = "synced"


class DeleteResult(StrEnum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"  # confirmed, but no row matched
    DECLINED = "declined"  # never sent to the store
    FAILED = "failed"  # see the error signal


def _coerce_id(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid task id: {raw!r}") from None


@dataclass(slots=True, frozen=True)
class ViewSnapshot:
    """What the presentation layer renders."""

    tasks: tuple[Task, ...]
    status: LoadState
    error: ErrorKind | None = None
    error_message: str | None = None


# reason: "session" | "load" | "resync" | "error" | "command"
Listener = Callable[[ViewSnapshot, str], None]


class TaskViewModel:
    def __init__(
        self,
        store: StoreClient,
        session: SessionProvider,
        *,
        confirm_delete: ConfirmDelete,
        table: str = "tasks",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._session = session
        self._confirm_delete = confirm_delete
        self._table = table
        self._clock = clock

        self._tasks: dict[int, Task] = {}
        self._status = LoadState.NO_SESSION
        self._error: ErrorKind | None = None
        self._error_message: str | None = None

        self._principal: Principal | None = None
        self._generation = 0

        self._stream: ChangeStream | None = None
        self._pump: asyncio.Task[None] | None = None
        self._resyncs: set[asyncio.Task[None]] = set()

        self._listeners: list[Listener] = []
        self._unregister_session: Callable[[], None] | None = None

    # ---- read side ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    @property
    def status(self) -> LoadState:
        return self._status

    @property
    def error(self) -> ErrorKind | None:
        return self._error

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def principal(self) -> Principal | None:
        return self._principal

    @property
    def subscribed(self) -> bool:
        return self._stream is not None

    def get(self, task_id: int) -> Task | None:
        return self._tasks.get(task_id)

    def snapshot(self) -> ViewSnapshot:
        return ViewSnapshot(
            tasks=tuple(self._tasks.values()),
            status=self._status,
            error=self._error,
            error_message=self._error_message,
        )

    def derived_view(self, flt: FilterState) -> list[Task]:
        return filter_tasks(self._tasks.values(), flt)

    def status_counts(self) -> dict[TaskStatus, int]:
        return status_counts(self._tasks.values())

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _publish(self, reason: str) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap, reason)
            except Exception:
                logger.exception("View listener failed (reason=%s)", reason)

    def _set_error(self, op: str, err: TaskDashError) -> None:
        self._error = err.kind
        self._error_message = str(err) or err.__class__.__name__
        logger.warning("%s failed (%s): %s", op, err.kind.value, self._error_message)
        self._publish("error")

    def _clear_error(self) -> bool:
        if self._error is None:
            return False
        self._error = None
        self._error_message = None
        return True

    def _require_principal(self) -> Principal:
        if self._principal is None:
            raise AuthError("not signed in")
        return self._principal

    # ---- session lifecycle ----

    async def start(self) -> None:
        """Bind to the session provider and apply its current principal."""
        if self._unregister_session is None:
            self._unregister_session = self._session.on_session_change(self._on_session_change)
        await self._on_session_change(self._session.current_principal())

    async def close(self) -> None:
        if self._unregister_session is not None:
            self._unregister_session()
            self._unregister_session = None
        if self._principal is not None:
            await self._end_session()
        else:
            await self.unsubscribe()

    async def _on_session_change(self, principal: Principal | None) -> None:
        if principal == self._principal:
            return
        if self._principal is not None:
            await self._end_session()
        if principal is not None:
            await self._begin_session(principal)

    async def _begin_session(self, principal: Principal) -> None:
        self._generation += 1
        self._principal = principal
        self._tasks = {}
        self._status = LoadState.LOADING
        self._clear_error()
        logger.info("Session started user_id=%s; loading tasks", principal.id)
        self._publish("session")
        # Subscribe before the first load so a change landing in between is not missed.
        await self.subscribe()
        await self.load()

    async def _end_session(self) -> None:
        self._generation += 1
        self._principal = None
        await self.unsubscribe()
        self._tasks = {}
        self._status = LoadState.NO_SESSION
        self._clear_error()
        logger.info("Session ended; task view cleared")
        self._publish("session")

    # ---- synchronization ----

    async def load(self, *, reason: str = "load") -> bool:
        """
        Fetch the full task set (newest first) and replace the collection.

        On failure the previous collection stays visible and the error is flagged.
        """
        try:
            self._require_principal()
        except AuthError as e:
            self._set_error("load", e)
            return False

        generation = self._generation
        try:
            rows = await self._store.select(self._table, order=Order("created_at", descending=True))
            tasks = [task_from_row(r) for r in rows]
        except TaskDashError as e:
            if generation == self._generation:
                self._finish_failed_load(e)
            return False
        except Exception as e:
            logger.exception("load crashed")
            if generation == self._generation:
                self._finish_failed_load(TransportError(f"{e.__class__.__name__}: {e}"))
            return False

        if generation != self._generation:
            logger.debug("Discarding load result from an ended session")
            return False

        self._tasks = {t.id: t for t in tasks}
        self._status = LoadState.SYNCED
        self._clear_error()
        logger.debug("Loaded %d tasks (%s)", len(tasks), reason)
        self._publish(reason)
        return True

    def _finish_failed_load(self, err: TaskDashError) -> None:
        if self._status is LoadState.LOADING:
            self._status = LoadState.SYNCED
        self._set_error("load", err)

    async def subscribe(self) -> bool:
        try:
            self._require_principal()
        except AuthError as e:
            self._set_error("subscribe", e)
            return False
        if self._stream is not None:
            return True

        generation = self._generation
        try:
            stream = await self._store.subscribe(self._table, ALL_CHANGES)
        except TaskDashError as e:
            self._set_error("subscribe", e)
            return False
        except Exception as e:
            logger.exception("subscribe crashed")
            self._set_error("subscribe", TransportError(f"{e.__class__.__name__}: {e}"))
            return False

        if generation != self._generation or self._stream is not None:
            await self._store.unsubscribe(stream)
            return self._stream is not None

        self._stream = stream
        self._pump = asyncio.create_task(self._pump_changes(stream, generation), name="task-changes")
        logger.info("Subscribed to changes on %s", self._table)
        return True

    async def unsubscribe(self) -> None:
        """Tear down the change stream. Safe to call repeatedly; acts once."""
        stream, self._stream = self._stream, None
        pump, self._pump = self._pump, None
        resyncs, self._resyncs = self._resyncs, set()

        for task in resyncs:
            task.cancel()
        if stream is None:
            return

        try:
            await self._store.unsubscribe(stream)
        except Exception:
            logger.exception("unsubscribe failed; closing stream locally")
            with contextlib.suppress(Exception):
                await stream.close()

        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        logger.info("Unsubscribed from changes on %s", self._table)

    async def _pump_changes(self, stream: ChangeStream, generation: int) -> None:
        try:
            async for event in stream:
                if stream is not self._stream or generation != self._generation:
                    break
                logger.debug("Change notification %s on %s", event.kind.value, event.table)
                task = asyncio.create_task(self._resync(stream, generation))
                self._resyncs.add(task)
                task.add_done_callback(self._resyncs.discard)
        except Exception:
            logger.exception("Change stream failed; live updates stopped")

    async def _resync(self, stream: ChangeStream, generation: int) -> None:
        if stream is not self._stream or generation != self._generation:
            return
        await self.load(reason="resync")

    # ---- commands ----

    async def _dispatch(self, op: str, call: Callable[[], Awaitable[int]]) -> int | None:
        generation = self._generation
        try:
            affected = await call()
        except TaskDashError as e:
            if generation == self._generation:
                self._set_error(op, e)
            return None
        except Exception as e:
            logger.exception("%s crashed", op)
            if generation == self._generation:
                self._set_error(op, TransportError(f"{e.__class__.__name__}: {e}"))
            return None

        if generation != self._generation:
            logger.debug("Ignoring late %s completion from an ended session", op)
            return None
        if self._clear_error():
            self._publish("command")
        return affected

    async def create(self, draft: TaskDraft) -> bool:
        """
        Insert a new task stamped with the principal and the current time.

        The task shows up with the next load; nothing is inserted locally.
        """
        try:
            principal = self._require_principal()
            row = draft.to_row()
        except TaskDashError as e:
            self._set_error("create", e)
            return False

        now = to_wire_ts(self._clock())
        row.update(created_by=principal.id, created_at=now, updated_at=now)
        affected = await self._dispatch("create", lambda: self._store.insert(self._table, [row]))
        if affected is None:
            return False
        logger.info("Task created title=%r", row["title"])
        return True

    async def update(self, task_id: int, changes: Mapping[str, Any]) -> bool:
        """
        Apply a sparse change set. An id that does not exist is a no-op (0 rows),
        not an error.
        """
        try:
            self._require_principal()
            task_id = _coerce_id(task_id)
            values = normalize_changes(changes)
            if not values:
                raise ValidationError("nothing to update")
        except TaskDashError as e:
            self._set_error("update", e)
            return False

        values["updated_at"] = to_wire_ts(self._clock())
        affected = await self._dispatch(
            "update", lambda: self._store.update(self._table, Eq("id", task_id), values)
        )
        if affected is None:
            return False
        if affected == 0:
            logger.debug("Update matched no rows task_id=%s", task_id)
        else:
            logger.info("Task updated id=%s fields=%s", task_id, sorted(values))
        return True

    async def delete(self, task_id: int) -> DeleteResult:
        """
        Delete after an explicit confirmation.

        DECLINED: the store was never called (not confirmed, or the session
        ended while asking). FAILED: the error signal says why.
        """
        try:
            self._require_principal()
            task_id = _coerce_id(task_id)
        except TaskDashError as e:
            self._set_error("delete", e)
            return DeleteResult.FAILED

        generation = self._generation
        try:
            confirmed = await self._confirm_delete(task_id, self._tasks.get(task_id))
        except Exception:
            logger.exception("Delete confirmation failed; treating as declined")
            confirmed = False
        if not confirmed:
            logger.info("Delete of task %s not confirmed", task_id)
            return DeleteResult.DECLINED
        if generation != self._generation:
            logger.debug("Session ended during delete confirmation; not dispatching")
            return DeleteResult.DECLINED

        affected = await self._dispatch(
            "delete", lambda: self._store.delete(self._table, Eq("id", task_id))
        )
        if affected is None:
            return DeleteResult.FAILED
        if affected == 0:
            logger.debug("Delete matched no rows task_id=%s", task_id)
            return DeleteResult.NOT_FOUND
        logger.info("Task deleted id=%s rows=%s", task_id, affected)
        return DeleteResult.DELETED

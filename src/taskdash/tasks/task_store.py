# src/taskdash/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from ..core.ports import ALL_CHANGES, ChangeEvent, ChangeKind, ChangeStream, Eq, Order, Row
from ..core.streams import QueueChangeStream
from ..errors import TransportError
from .task_models import TaskPriority, TaskStatus, to_wire_ts, utc_now

logger = logging.getLogger(__name__)

COLUMNS = (
    "id",
    "title",
    "description",
    "status",
    "priority",
    "created_at",
    "updated_at",
    "assigned_to",
    "created_by",
    "due_date",
    "estimated_hours",
    "tags",
)
_WRITABLE = frozenset(COLUMNS) - {"id"}


class SqliteTaskStore:
    """
    SQLite implementation of the StoreClient port.

    Stands in for the hosted backend in local mode and in integration tests:
    - ids are assigned by SQLite (AUTOINCREMENT), never by the client
    - status/priority are guarded by CHECK constraints
    - every write that touches rows is announced to open change streams

    Each method opens its own short-lived connection.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, table: str = "tasks") -> None:
        if not table.isidentifier():
            raise ValueError(f"invalid table name: {table!r}")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._table = table
        self._streams: list[QueueChangeStream] = []
        self._ensure_schema()
        logger.info("SqliteTaskStore ready db=%s table=%s", self._db_path, table)

    # ---- low-level helpers ----

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise TransportError(f"cannot open task database: {e}") from e
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise TransportError(f"task database error: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        statuses = ",".join(f"'{s.value}'" for s in TaskStatus)
        priorities = ",".join(f"'{p.value}'" for p in TaskPriority)
        with self._connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL CHECK (length(trim(title)) > 0),
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ({statuses})),
                    priority TEXT NOT NULL DEFAULT 'medium' CHECK (priority IN ({priorities})),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    assigned_to TEXT,
                    created_by TEXT,
                    due_date TEXT,
                    estimated_hours REAL,
                    tags TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._table}_created ON {self._table}(created_at)"
            )

    def _check_table(self, table: str) -> None:
        if table != self._table:
            raise TransportError(f"unknown table: {table!r}")

    @staticmethod
    def _check_column(column: str) -> str:
        if column not in COLUMNS:
            raise TransportError(f"unknown column: {column!r}")
        return column

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column == "tags":
            return json.dumps(list(value or []), ensure_ascii=False)
        if column in ("created_at", "updated_at") and value is not None and not isinstance(value, str):
            return to_wire_ts(value)
        return value

    @staticmethod
    def _decode(row: sqlite3.Row) -> Row:
        out = dict(row)
        try:
            tags = json.loads(out.get("tags") or "[]")
        except ValueError:
            tags = []
        out["tags"] = tags if isinstance(tags, list) else []
        return out

    def _notify(self, kind: ChangeKind) -> None:
        self._streams = [s for s in self._streams if not s.closed]
        event = ChangeEvent(table=self._table, kind=kind)
        for stream in self._streams:
            stream.push(event)

    # ---- StoreClient ----

    async def select(
        self,
        table: str,
        filter: Eq | None = None,
        order: Order | None = None,
    ) -> list[Row]:
        self._check_table(table)
        sql = f"SELECT * FROM {self._table}"
        params: list[Any] = []
        if filter is not None:
            sql += f" WHERE {self._check_column(filter.column)} = ?"
            params.append(filter.value)
        if order is not None:
            direction = "DESC" if order.descending else "ASC"
            sql += f" ORDER BY {self._check_column(order.column)} {direction}"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._decode(r) for r in rows]

    async def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        self._check_table(table)
        inserted = 0
        with self._connect() as conn:
            for row in rows:
                values = {k: v for k, v in row.items() if k in _WRITABLE}
                dropped = set(row) - _WRITABLE
                if dropped:
                    raise TransportError(f"cannot write column(s): {', '.join(sorted(dropped))}")
                now = to_wire_ts(utc_now())
                values.setdefault("created_at", now)
                values.setdefault("updated_at", values["created_at"])
                cols = list(values)
                placeholders = ",".join("?" for _ in cols)
                cur = conn.execute(
                    f"INSERT INTO {self._table}({', '.join(cols)}) VALUES ({placeholders})",
                    [self._encode(c, values[c]) for c in cols],
                )
                logger.debug("Task inserted id=%s", cur.lastrowid)
                inserted += 1
        if inserted:
            self._notify(ChangeKind.INSERT)
        return inserted

    async def update(self, table: str, filter: Eq, changes: Mapping[str, Any]) -> int:
        self._check_table(table)
        fields = [self._check_column(c) for c in changes if c != "id"]
        if not fields:
            return 0
        assignments = ", ".join(f"{c} = ?" for c in fields)
        params = [self._encode(c, changes[c]) for c in fields]
        params.append(filter.value)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE {self._table} SET {assignments} "
                f"WHERE {self._check_column(filter.column)} = ?",
                params,
            )
            affected = cur.rowcount
        if affected:
            self._notify(ChangeKind.UPDATE)
        return affected

    async def delete(self, table: str, filter: Eq) -> int:
        self._check_table(table)
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM {self._table} WHERE {self._check_column(filter.column)} = ?",
                (filter.value,),
            )
            affected = cur.rowcount
        if affected:
            self._notify(ChangeKind.DELETE)
        return affected

    async def subscribe(
        self,
        table: str,
        events: Iterable[ChangeKind] = ALL_CHANGES,
    ) -> ChangeStream:
        self._check_table(table)
        stream = QueueChangeStream(table, events)
        self._streams.append(stream)
        logger.debug("Change stream opened table=%s streams=%d", table, len(self._streams))
        return stream

    async def unsubscribe(self, stream: ChangeStream) -> None:
        await stream.close()
        self._streams = [s for s in self._streams if s is not stream and not s.closed]

    async def close(self) -> None:
        for stream in list(self._streams):
            await stream.close()
        self._streams.clear()

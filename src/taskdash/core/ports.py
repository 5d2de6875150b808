# src/taskdash/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The view model depends on Protocols instead of concrete implementations.
This keeps the hosted backend / local sqlite store / auth provider swappable
and makes testing easier.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from ..tasks.task_models import Principal, Task

Row = dict[str, Any]


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_CHANGES: frozenset[ChangeKind] = frozenset(ChangeKind)


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """Unit notification: something changed in `table`. Carries no row data."""

    table: str
    kind: ChangeKind


@dataclass(slots=True, frozen=True)
class Eq:
    """Row filter: column = value."""

    column: str
    value: Any


@dataclass(slots=True, frozen=True)
class Order:
    column: str
    descending: bool = False


class ChangeStream(Protocol):
    """
    Cancellable stream of change notifications.

    Iteration ends once the stream is closed; events still buffered at that
    point are dropped.
    """

    @property
    def closed(self) -> bool: ...

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class StoreClient(Protocol):
    """
    Remote Task Store client.

    Write methods return the number of affected rows (the "ack").
    Implementations raise AuthError / TransportError from taskdash.errors.
    """

    async def select(
        self,
        table: str,
        filter: Eq | None = None,
        order: Order | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int: ...

    async def update(self, table: str, filter: Eq, changes: Mapping[str, Any]) -> int: ...

    async def delete(self, table: str, filter: Eq) -> int: ...

    async def subscribe(
        self,
        table: str,
        events: Iterable[ChangeKind] = ALL_CHANGES,
    ) -> ChangeStream: ...

    async def unsubscribe(self, stream: ChangeStream) -> None: ...

    async def close(self) -> None: ...


SessionHandler = Callable[[Principal | None], Awaitable[None]]


class SessionProvider(Protocol):
    def current_principal(self) -> Principal | None: ...

    def on_session_change(self, handler: SessionHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that unregisters it."""
        ...

    async def sign_out(self) -> None: ...


# Blocking (awaited) confirmation step for destructive deletes.
# Receives the id and the locally known task (None if not in the mirror).
ConfirmDelete = Callable[[int, Task | None], Awaitable[bool]]

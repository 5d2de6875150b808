# src/taskdash/remote/rest_store.py

"""
Hosted backend adapter (PostgREST-style REST API, e.g. a Supabase project).

Rows live under {base_url}/rest/v1/<table>. Filters use the `col=eq.value`
query syntax, ordering uses `order=col.desc`.

Change notifications are produced by PollingChangeStream: a small polling loop
that fetches (id, updated_at) for the whole table and diffs it against the
previous poll. This trades latency for not needing a websocket client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import httpx

from ..core.ports import ALL_CHANGES, ChangeEvent, ChangeKind, ChangeStream, Eq, Order, Row
from ..core.streams import QueueChangeStream
from ..errors import AuthError, TransportError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            val = body.get(key)
            if val:
                return str(val)
    text = (resp.text or "").strip()
    return text[:200] or resp.reason_phrase or "request failed"


def raise_for_status(resp: httpx.Response) -> None:
    """Map an HTTP error response onto the taskdash error taxonomy."""
    if resp.status_code < 400:
        return
    msg = _error_message(resp)
    if resp.status_code in (401, 403):
        raise AuthError(f"not authorized (HTTP {resp.status_code}): {msg}")
    raise TransportError(f"HTTP {resp.status_code}: {msg}")


def _eq_param(flt: Eq) -> tuple[str, str]:
    value = flt.value
    if isinstance(value, bool):
        value = "true" if value else "false"
    return flt.column, f"eq.{value}"


class PollingChangeStream(QueueChangeStream):
    """
    ChangeStream that detects changes by polling.

    The first poll only records a baseline (RestTaskStore.subscribe takes it
    before handing the stream out). Afterwards each poll emits at most
    one event per kind: INSERT for new ids, DELETE for vanished ids, UPDATE for
    ids whose updated_at moved.
    """

    def __init__(
        self,
        store: RestTaskStore,
        table: str,
        events: Iterable[ChangeKind] = ALL_CHANGES,
        *,
        interval_seconds: float = 2.0,
    ) -> None:
        super().__init__(table, events)
        self._store = store
        self._interval = max(0.05, float(interval_seconds))
        self._baseline: dict[Any, Any] | None = None
        self._runner: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._runner is None:
            self._runner = asyncio.create_task(self._run(), name=f"poll:{self.table}")

    async def poll_once(self) -> list[ChangeEvent]:
        rows = await self._store.select_fingerprint(self.table)
        current = {r.get("id"): r.get("updated_at") for r in rows}
        previous, self._baseline = self._baseline, current
        if previous is None:
            return []

        kinds: list[ChangeKind] = []
        if current.keys() - previous.keys():
            kinds.append(ChangeKind.INSERT)
        if any(current[k] != previous[k] for k in current.keys() & previous.keys()):
            kinds.append(ChangeKind.UPDATE)
        if previous.keys() - current.keys():
            kinds.append(ChangeKind.DELETE)

        out: list[ChangeEvent] = []
        for kind in kinds:
            event = ChangeEvent(table=self.table, kind=kind)
            if self.push(event):
                out.append(event)
        return out

    async def _run(self) -> None:
        while not self.closed:
            await asyncio.sleep(self._interval)
            try:
                events = await self.poll_once()
                if events:
                    logger.debug("Poll detected %s on %s", [e.kind.value for e in events], self.table)
            except (AuthError, TransportError) as e:
                logger.warning("Change poll failed table=%s: %s", self.table, e)
            except Exception:
                logger.exception("Change poll crashed table=%s", self.table)

    async def close(self) -> None:
        await super().close()
        runner, self._runner = self._runner, None
        if runner is not None and runner is not asyncio.current_task():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass


class RestTaskStore:
    """StoreClient over the hosted REST API (httpx.AsyncClient)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 10.0,
        poll_interval_seconds: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("backend URL is not set. Set TASKDASH_SUPABASE_URL in your .env.")
        if not api_key or not api_key.strip():
            raise ValueError("backend API key is not set. Set TASKDASH_SUPABASE_ANON_KEY in your .env.")

        self._api_key = api_key.strip()
        self._token_provider = token_provider
        self._poll_interval = float(poll_interval_seconds)
        self._streams: list[PollingChangeStream] = []
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
        )

    def _headers(self, *, prefer: str | None = None) -> dict[str, str]:
        token = self._token_provider() if self._token_provider is not None else None
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token or self._api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=self._headers(prefer=prefer),
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {table} failed: {e.__class__.__name__}: {e}") from e
        raise_for_status(resp)
        return resp

    @staticmethod
    def _rows(resp: httpx.Response) -> list[Row]:
        if not resp.content:
            return []
        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("backend returned non-JSON body") from e
        if not isinstance(data, list):
            raise TransportError(f"expected a JSON array, got {type(data).__name__}")
        return [dict(r) for r in data if isinstance(r, dict)]

    # ---- StoreClient ----

    async def select(
        self,
        table: str,
        filter: Eq | None = None,
        order: Order | None = None,
    ) -> list[Row]:
        params = [("select", "*")]
        if filter is not None:
            params.append(_eq_param(filter))
        if order is not None:
            params.append(("order", f"{order.column}.{'desc' if order.descending else 'asc'}"))
        resp = await self._request("GET", table, params=params)
        return self._rows(resp)

    async def select_fingerprint(self, table: str) -> list[Row]:
        resp = await self._request("GET", table, params=[("select", "id,updated_at")])
        return self._rows(resp)

    async def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        payload = [dict(r) for r in rows]
        if not payload:
            return 0
        resp = await self._request("POST", table, json=payload, prefer="return=representation")
        return len(self._rows(resp))

    async def update(self, table: str, filter: Eq, changes: Mapping[str, Any]) -> int:
        resp = await self._request(
            "PATCH",
            table,
            params=[_eq_param(filter)],
            json=dict(changes),
            prefer="return=representation",
        )
        return len(self._rows(resp))

    async def delete(self, table: str, filter: Eq) -> int:
        resp = await self._request(
            "DELETE", table, params=[_eq_param(filter)], prefer="return=representation"
        )
        return len(self._rows(resp))

    async def subscribe(
        self,
        table: str,
        events: Iterable[ChangeKind] = ALL_CHANGES,
    ) -> ChangeStream:
        stream = PollingChangeStream(self, table, events, interval_seconds=self._poll_interval)
        # The baseline is taken before returning, so a write that lands between
        # subscribe() and the caller's first select() is still reported.
        try:
            await stream.poll_once()
        except Exception:
            await stream.close()
            raise
        self._streams.append(stream)
        stream.start()
        logger.debug("Polling change stream started table=%s interval=%.2fs", table, self._poll_interval)
        return stream

    async def unsubscribe(self, stream: ChangeStream) -> None:
        await stream.close()
        self._streams = [s for s in self._streams if s is not stream and not s.closed]

    async def close(self) -> None:
        for stream in list(self._streams):
            await stream.close()
        self._streams.clear()
        await self._client.aclose()

# src/taskdash/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store client and session provider for the selected backend,
- injects both into the TaskViewModel and builds AppState.
"""

from __future__ import annotations

import contextlib
import logging

from ..config import get_settings
from ..core.ports import ConfirmDelete, SessionProvider, StoreClient
from ..core.session import LocalSessionProvider
from ..core.state import AppState
from ..core.view_model import TaskViewModel
from ..remote.auth import PasswordSessionProvider
from ..remote.rest_store import RestTaskStore
from ..tasks.task_models import Principal
from ..tasks.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_backend(settings) -> tuple[StoreClient, SessionProvider]:
    """Concrete store + session for settings.backend ("rest" or "sqlite")."""
    if settings.backend == "rest":
        session = PasswordSessionProvider(
            settings.supabase_url,
            settings.supabase_anon_key or "",
            timeout_seconds=settings.http_timeout_seconds,
        )
        store = RestTaskStore(
            settings.supabase_url,
            settings.supabase_anon_key or "",
            token_provider=session.access_token,
            timeout_seconds=settings.http_timeout_seconds,
            poll_interval_seconds=settings.poll_interval_seconds,
        )
        logger.info("Using hosted backend %s", settings.supabase_url)
        return store, session

    _ensure_local_dirs(settings)
    local = Principal(id=settings.local_user_id, email=settings.local_user_email or None)
    logger.info("Using local backend %s", settings.tasks_db_path)
    return (
        SqliteTaskStore(settings.tasks_db_path, table=settings.tasks_table),
        LocalSessionProvider(local),
    )


def create_initial_state(*, confirm_delete: ConfirmDelete, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    store, session = build_backend(settings)
    view_model = TaskViewModel(
        store,
        session,
        confirm_delete=confirm_delete,
        table=settings.tasks_table,
    )
    return AppState(settings=settings, store=store, session=session, view_model=view_model)


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.view_model.close()
    except Exception:
        logger.exception("View model close failed.")

    try:
        await state.store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)

    close = getattr(state.session, "close", None)
    if close is not None:
        with contextlib.suppress(Exception):
            await close()

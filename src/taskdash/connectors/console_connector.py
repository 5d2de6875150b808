# src/taskdash/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..core.view_model import ViewSnapshot
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def ask(prompt: str) -> str:
    """Read one line without blocking the event loop (change notifications keep flowing)."""
    return (await asyncio.to_thread(input, prompt)).strip()


async def confirm_delete(task_id: int, task: Task | None) -> bool:
    """Blocking y/N confirmation used by the view model before any delete."""
    label = f'#{task_id} "{task.title}"' if task is not None else f"#{task_id}"
    try:
        answer = await ask(f"Delete task {label}? This cannot be undone. [y/N] ")
    except (EOFError, KeyboardInterrupt):
        return False
    return answer.lower() in ("y", "yes")


def _on_view_change(snapshot: ViewSnapshot, reason: str) -> None:
    # Only remote-triggered refreshes are announced; command replies cover the rest.
    if reason == "resync":
        _print_ts(f"[sync] Task list updated ({len(snapshot.tasks)} tasks).")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (backend=%s).", getattr(state.settings, "backend", "?"))
    app_name = str(getattr(state.settings, "app_name", "taskdash"))
    _print_ts(f"[{app_name}] Type /help for commands, /list to see tasks, /exit to quit.\n")

    unlisten = state.view_model.add_listener(_on_view_change)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = await ask(">>> ")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Bare text is a shortcut for search.
                user_input = "/search " + user_input

            try:
                reply = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is not None:
                print(f"[{_ts_local()}] {reply}\n", flush=True)
    finally:
        unlisten()

    logger.info("Console connector finished.")

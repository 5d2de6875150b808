# src/taskdash/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any, cast

from ..core.state import AppState
from ..core.view_model import DeleteResult
from ..errors import TaskDashError
from ..tasks.task_filter import ALL, FilterState
from ..tasks.task_models import Task, TaskDraft, TaskPriority, TaskStatus, normalize_changes

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

# Short names accepted in key=value arguments.
FIELD_ALIASES = {
    "desc": "description",
    "assign": "assigned_to",
    "assignee": "assigned_to",
    "due": "due_date",
    "hours": "estimated_hours",
    "tag": "tags",
}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /list, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def _fmt_date(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d")


def format_task(task: Task) -> str:
    line = f"#{task.id} [{task.status.value}] ({task.priority.value}) {task.title}"
    if task.assigned_to:
        line += f" @{task.assigned_to}"
    if task.due_date:
        line += f" due {task.due_date.isoformat()}"
    return line


def format_task_details(task: Task) -> str:
    lines = [
        format_task(task),
        f"  Description: {task.description or '-'}",
        f"  Created: {_fmt_date(task.created_at)}  Updated: {_fmt_date(task.updated_at)}",
    ]
    if task.created_by:
        lines.append(f"  Created by: {task.created_by}")
    if task.estimated_hours is not None:
        lines.append(f"  Estimated hours: {task.estimated_hours:g}")
    if task.tags:
        lines.append(f"  Tags: {', '.join(task.tags)}")
    return "\n".join(lines)


def describe_filter(flt: FilterState) -> str:
    if flt.is_empty:
        return "no filter"
    parts = []
    if flt.search:
        parts.append(f'search="{flt.search}"')
    if flt.status != ALL:
        parts.append(f"status={flt.status}")
    if flt.priority != ALL:
        parts.append(f"priority={flt.priority}")
    return ", ".join(parts)


# ---- argument helpers ----


def parse_fields(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split args into positional words and key=value pairs (aliases resolved)."""
    words: list[str] = []
    fields: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key:
            key = key.strip().lower()
            fields[FIELD_ALIASES.get(key, key)] = value
        else:
            words.append(arg)
    return words, fields


def _parse_id(raw: str | None) -> int | None:
    try:
        return int(str(raw).lstrip("#"))
    except (TypeError, ValueError):
        return None


def _failure(state: AppState, action: str) -> str:
    vm = state.view_model
    kind = vm.error.value if vm.error else "error"
    return f"{action} failed ({kind}): {vm.error_message or 'unknown error'}"


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    vm = state.view_model
    principal = vm.principal
    who = (principal.email or principal.id) if principal else "not signed in"
    lines = [
        "Status:",
        f"  Backend: {getattr(state.settings, 'backend', '?')}",
        f"  User: {who}",
        f"  Sync: {vm.status.value} ({len(vm.tasks)} tasks, live={'on' if vm.subscribed else 'off'})",
        f"  Filter: {describe_filter(state.filter)}",
    ]
    if vm.error:
        lines.append(f"  Last error ({vm.error.value}): {vm.error_message}")
    return "\n".join(lines)


async def cmd_login(state: AppState, args: list[str]) -> str:
    """
    /login                 -> local backend: sign in as the configured local user
    /login email password  -> hosted backend
    """
    sign_in = getattr(state.session, "sign_in", None)
    if sign_in is None:
        return "This backend does not support signing in."
    try:
        if len(inspect.signature(sign_in).parameters) == 0:
            principal = await sign_in()
        else:
            if len(args) < 2:
                return "Usage: /login <email> <password>"
            principal = await sign_in(args[0], args[1])
    except TaskDashError as e:
        return f"Sign-in failed ({e.kind.value}): {e}"
    return f"Signed in as {principal.email or principal.id}."


async def cmd_signup(state: AppState, args: list[str]) -> str:
    sign_up = getattr(state.session, "sign_up", None)
    if sign_up is None:
        return "This backend does not support creating accounts."
    if len(args) < 2:
        return "Usage: /signup <email> <password>"
    try:
        principal = await sign_up(args[0], args[1])
    except TaskDashError as e:
        return f"Sign-up failed ({e.kind.value}): {e}"
    if principal is None:
        return "Account created. Check your email to confirm it, then /login."
    return f"Account created. Signed in as {principal.email or principal.id}."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.view_model.principal is None:
        return "Not signed in."
    await state.session.sign_out()
    return "Signed out."


async def cmd_list(state: AppState, args: list[str]) -> str:
    vm = state.view_model
    if vm.principal is None:
        return "Not signed in. Use /login."
    visible = vm.derived_view(state.filter)
    header = f"Tasks ({len(visible)}/{len(vm.tasks)}, {describe_filter(state.filter)}):"
    if not visible:
        body = "  No tasks found." if vm.tasks else "  No tasks yet. Create one with /add <title>."
    else:
        body = "\n".join(f"  {format_task(t)}" for t in visible)
    out = f"{header}\n{body}"
    if vm.error:
        out += f"\n  (showing last synced data; {vm.error.value} error: {vm.error_message})"
    return out


async def cmd_show(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0] if args else None)
    if task_id is None:
        return "Usage: /show <id>"
    task = state.view_model.get(task_id)
    if task is None:
        return f"No task #{task_id}."
    return format_task_details(task)


async def cmd_search(state: AppState, args: list[str]) -> str:
    flt = state.filter
    state.filter = FilterState(search=" ".join(args).strip(), status=flt.status, priority=flt.priority)
    return await cmd_list(state, [])


async def cmd_filter(state: AppState, args: list[str]) -> str:
    """
    /filter status=<status|all> priority=<priority|all>
    """
    _, fields = parse_fields(args)
    unknown = set(fields) - {"status", "priority"}
    if not fields or unknown:
        return (
            "Usage: /filter status=<status|all> priority=<priority|all>\n"
            f"  statuses: {', '.join(s.value for s in TaskStatus)}\n"
            f"  priorities: {', '.join(p.value for p in TaskPriority)}"
        )
    flt = state.filter
    try:
        state.filter = FilterState.build(
            search=flt.search,
            status=fields.get("status", flt.status),
            priority=fields.get("priority", flt.priority),
        )
    except ValueError as e:
        return f"Invalid filter: {e}"
    return await cmd_list(state, [])


async def cmd_clear(state: AppState, args: list[str]) -> str:
    state.filter = FilterState()
    return "Filter cleared."


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title words...> [description=..] [status=..] [priority=..]
         [assign=..] [due=YYYY-MM-DD] [hours=..] [tags=a,b]
    """
    words, fields = parse_fields(args)
    title = " ".join(words).strip() or fields.get("title", "")
    fields.pop("title", None)
    try:
        values = normalize_changes(fields)
    except TaskDashError as e:
        return f"Invalid task: {e}"
    draft = TaskDraft(
        title=title,
        description=values.get("description"),
        status=TaskStatus(values.get("status", TaskStatus.PENDING.value)),
        priority=TaskPriority(values.get("priority", TaskPriority.MEDIUM.value)),
        assigned_to=values.get("assigned_to"),
        due_date=_as_date(values.get("due_date")),
        estimated_hours=values.get("estimated_hours"),
        tags=list(values.get("tags") or []),
    )
    if not await state.view_model.create(draft):
        return _failure(state, "Create")
    return "Task submitted; it will appear after the next sync."


def _as_date(raw: Any) -> date | None:
    return date.fromisoformat(raw) if raw else None


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <id> key=value...   (title, description, status, priority, assign, due, hours, tags)
    """
    task_id = _parse_id(args[0] if args else None)
    _, fields = parse_fields(args[1:])
    if task_id is None or not fields:
        return "Usage: /edit <id> key=value... (e.g. /edit 3 status=completed priority=high)"
    if not await state.view_model.update(task_id, fields):
        return _failure(state, "Update")
    return f"Update for task #{task_id} submitted."


async def cmd_delete(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0] if args else None)
    if task_id is None:
        return "Usage: /delete <id>"
    result = await state.view_model.delete(task_id)
    if result is DeleteResult.DECLINED:
        return "Delete cancelled."
    if result is DeleteResult.FAILED:
        return _failure(state, "Delete")
    if result is DeleteResult.NOT_FOUND:
        return f"No task #{task_id}."
    return f"Task #{task_id} deleted."


async def cmd_stats(state: AppState, args: list[str]) -> str:
    counts = state.view_model.status_counts()
    lines = [f"Tasks by status ({len(state.view_model.tasks)} total):"]
    for status, n in counts.items():
        lines.append(f"  {status.value.replace('-', ' ')}: {n}")
    return "\n".join(lines)


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("Reloading tasks...")
    if not await state.view_model.load():
        return _failure(state, "Reload")
    return f"Loaded {len(state.view_model.tasks)} tasks."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend, user, sync state and last error.")
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.", aliases=["signin"])
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.")
registry.register("logout", cmd_logout, help_text="Sign out.", aliases=["signout"])
registry.register("list", cmd_list, help_text="List tasks matching the current filter.", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("search", cmd_search, help_text="Search title/description: /search <text>.")
registry.register(
    "filter", cmd_filter, help_text="Filter: /filter status=<..|all> priority=<..|all>."
)
registry.register("clear", cmd_clear, help_text="Reset search and filters.")
registry.register(
    "add", cmd_add, help_text="Create a task: /add <title> [priority=..] [due=..] [tags=a,b].", aliases=["new"]
)
registry.register("edit", cmd_edit, help_text="Update a task: /edit <id> key=value...")
registry.register("delete", cmd_delete, help_text="Delete a task (asks to confirm): /delete <id>.", aliases=["rm"])
registry.register("stats", cmd_stats, help_text="Task counts per status.")
registry.register("reload", cmd_reload, help_text="Fetch the task list again.")

# src/taskdash/tasks/task_models.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from ..errors import TransportError, ValidationError


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValueError(f"unknown status {raw!r} (expected one of: {allowed})") from None


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def parse(cls, raw: Any) -> TaskPriority:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"unknown priority {raw!r} (expected one of: {allowed})") from None


@dataclass(slots=True, frozen=True)
class Principal:
    id: str
    email: str | None = None


@dataclass(slots=True, frozen=True)
class Task:
    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority
    created_at: datetime
    updated_at: datetime

    description: str | None = None
    assigned_to: str | None = None
    created_by: str | None = None
    due_date: date | None = None
    estimated_hours: float | None = None
    tags: tuple[str, ...] = ()


# Columns a client may write. id / created_at / created_by are stamped, never edited.
EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "assigned_to",
        "due_date",
        "estimated_hours",
        "tags",
    }
)


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_wire_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.isoformat()


def _parse_ts(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, (int, float)):
        ts = datetime.fromtimestamp(float(raw), UTC)
    else:
        s = str(raw).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        ts = datetime.fromisoformat(s)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    # Date columns sometimes come back as full timestamps.
    return date.fromisoformat(str(raw).strip()[:10])


def _parse_tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = list(raw)
    return tuple(str(p).strip() for p in parts if str(p).strip())


def _opt_str(raw: Any) -> str | None:
    return None if raw is None else str(raw)


def task_from_row(row: Mapping[str, Any]) -> Task:
    """
    Decode one store row.

    The store owns the schema; a row with a status/priority outside the enumerations
    (or a missing id/title) is a contract violation and is reported as a TransportError.
    """
    try:
        return Task(
            id=int(row["id"]),
            title=str(row["title"]),
            status=TaskStatus.parse(row.get("status", TaskStatus.PENDING.value)),
            priority=TaskPriority.parse(row.get("priority", TaskPriority.MEDIUM.value)),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            description=_opt_str(row.get("description")),
            assigned_to=_opt_str(row.get("assigned_to")),
            created_by=_opt_str(row.get("created_by")),
            due_date=_parse_date(row.get("due_date")),
            estimated_hours=(
                float(row["estimated_hours"]) if row.get("estimated_hours") is not None else None
            ),
            tags=_parse_tags(row.get("tags")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(f"store returned a malformed task row: {e}") from e


def normalize_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate a sparse change set and convert it to wire values.

    Raises ValidationError for unknown fields, a blank title, or values outside
    the status/priority enumerations. Nothing here talks to the store.
    """
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"unknown task field(s): {', '.join(unknown)}")

    out: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "title":
            title = str(value or "").strip()
            if not title:
                raise ValidationError("title is required")
            out[key] = title
        elif key in ("status", "priority"):
            parser = TaskStatus.parse if key == "status" else TaskPriority.parse
            try:
                out[key] = parser(value).value
            except ValueError as e:
                raise ValidationError(str(e)) from None
        elif key == "due_date":
            try:
                parsed = _parse_date(value)
            except ValueError:
                raise ValidationError(f"due_date must be YYYY-MM-DD, got {value!r}") from None
            out[key] = parsed.isoformat() if parsed is not None else None
        elif key == "estimated_hours":
            if value is None or value == "":
                out[key] = None
                continue
            try:
                hours = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"estimated_hours must be a number, got {value!r}") from None
            if hours < 0:
                raise ValidationError("estimated_hours must not be negative")
            out[key] = hours
        elif key == "tags":
            out[key] = list(_parse_tags(value))
        else:
            out[key] = None if value is None else str(value)
    return out


@dataclass(slots=True)
class TaskDraft:
    """A task as entered by the user: no identity, no timestamps."""

    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: str | None = None
    due_date: date | None = None
    estimated_hours: float | None = None
    tags: list[str] = field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "due_date": self.due_date,
            "estimated_hours": self.estimated_hours,
            "tags": self.tags,
        }
        row = normalize_changes({k: v for k, v in values.items() if v is not None})
        if not row.get("tags"):
            row.pop("tags", None)
        return row

# src/taskdash/tasks/task_filter.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .task_models import Task, TaskPriority, TaskStatus

ALL = "all"


@dataclass(slots=True, frozen=True)
class FilterState:
    """
    Presentation-owned filter: free-text search plus two categorical filters.

    status / priority hold an enum value or "all" (no restriction).
    """

    search: str = ""
    status: str = ALL
    priority: str = ALL

    @classmethod
    def build(cls, search: str = "", status: str = ALL, priority: str = ALL) -> FilterState:
        """Normalize user input; raises ValueError for an unknown status/priority."""
        status = (status or ALL).strip().lower()
        priority = (priority or ALL).strip().lower()
        if status != ALL:
            status = TaskStatus.parse(status).value
        if priority != ALL:
            priority = TaskPriority.parse(priority).value
        return cls(search=search or "", status=status, priority=priority)

    @property
    def is_empty(self) -> bool:
        return not self.search and self.status == ALL and self.priority == ALL


def matches(task: Task, flt: FilterState) -> bool:
    term = flt.search.lower()
    if term:
        in_title = term in task.title.lower()
        in_desc = task.description is not None and term in task.description.lower()
        if not (in_title or in_desc):
            return False
    if flt.status != ALL and task.status.value != flt.status:
        return False
    if flt.priority != ALL and task.priority.value != flt.priority:
        return False
    return True


def filter_tasks(tasks: Iterable[Task], flt: FilterState) -> list[Task]:
    """Derived view: the tasks passing all three predicates, in input order."""
    return [t for t in tasks if matches(t, flt)]


def status_counts(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
    counts = {s: 0 for s in TaskStatus}
    for t in tasks:
        counts[t.status] += 1
    return counts

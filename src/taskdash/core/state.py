# src/taskdash/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_filter import FilterState
from .ports import SessionProvider, StoreClient
from .view_model import TaskViewModel


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: StoreClient
    session: SessionProvider
    view_model: TaskViewModel

    # Presentation-owned; never persisted.
    filter: FilterState = field(default_factory=FilterState)

# src/taskdash/errors.py

"""
Error taxonomy shared by adapters and the view model.

Adapters translate library failures (httpx, sqlite3) into these classes.
The view model catches all of them at its boundary and turns them into an
error signal on its snapshot; none escape to the presentation layer.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    AUTH = "auth"
    TRANSPORT = "transport"
    VALIDATION = "validation"


class TaskDashError(Exception):
    kind: ErrorKind = ErrorKind.TRANSPORT


class AuthError(TaskDashError):
    """No principal, or the backend rejected our credentials."""

    kind = ErrorKind.AUTH


class TransportError(TaskDashError):
    """Network/store failure, including rows the store should never have produced."""

    kind = ErrorKind.TRANSPORT


class ValidationError(TaskDashError):
    """Rejected locally before anything is sent to the store."""

    kind = ErrorKind.VALIDATION

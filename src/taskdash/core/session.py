# src/taskdash/core/session.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..tasks.task_models import Principal
from .ports import SessionHandler

logger = logging.getLogger(__name__)


class BaseSessionProvider:
    """
    Holds the current principal and fans out transitions to registered handlers.

    Handlers are awaited in registration order. A handler that raises is logged
    and does not stop the others.
    """

    def __init__(self) -> None:
        self._principal: Principal | None = None
        self._handlers: list[SessionHandler] = []

    def current_principal(self) -> Principal | None:
        return self._principal

    def on_session_change(self, handler: SessionHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unregister() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unregister

    async def _set_principal(self, principal: Principal | None) -> None:
        if principal == self._principal:
            return
        self._principal = principal
        who = (principal.email or principal.id) if principal is not None else "signed out"
        logger.info("Session changed: %s", who)
        for handler in list(self._handlers):
            try:
                await handler(principal)
            except Exception:
                logger.exception("Session change handler failed")

    async def sign_out(self) -> None:
        await self._set_principal(None)


class LocalSessionProvider(BaseSessionProvider):
    """Fixed single-user session for the local sqlite backend."""

    def __init__(self, principal: Principal, *, signed_in: bool = True) -> None:
        super().__init__()
        self._local = principal
        if signed_in:
            self._principal = principal

    async def sign_in(self) -> Principal:
        await self._set_principal(self._local)
        return self._local

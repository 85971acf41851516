"""Cooperative cancellation for task executions.

Aborting an execution does not interrupt the operation. The controller
stops observing it and cancels its token; an operation that wants to stop
early has to look at the token itself:

    async def load():
        for page in pages:
            check_cancelled()
            await fetch(page)

The token travels through a contextvar. The controller sets it right before
creating the operation's task, and asyncio copies the current context into
every new task, so current_token() inside the operation (and anything it
awaits) sees the token of its own execution.
"""

from __future__ import annotations

import contextvars
import logging
from typing import Callable

from hookfx.errors import AbortError

logger = logging.getLogger("hookfx.cancel")


class CancelToken:
    """One-shot cancellation flag. Once cancelled it stays cancelled."""

    __slots__ = ("_cancelled", "_callbacks")

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Mark cancelled and fire on_cancel callbacks. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception:
                logger.exception("on_cancel callback failed")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run callback when the token is cancelled (now, if it already is)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortError()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"


# Token of the execution the running coroutine belongs to.
_current_token: contextvars.ContextVar[CancelToken | None] = contextvars.ContextVar(
    "hookfx_current_token", default=None
)


def current_token() -> CancelToken | None:
    """Token of the enclosing execution, or None outside one."""
    return _current_token.get()


def check_cancelled() -> None:
    """Raise AbortError if the enclosing execution was aborted."""
    token = _current_token.get()
    if token is not None:
        token.raise_if_cancelled()

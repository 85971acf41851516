"""TaskController — one cancellable async operation with observable state.

The controller runs a user-supplied coroutine function and exposes its
lifecycle as a TaskState snapshot: data, is_loading, error.

    controller = TaskController(fetch_products, on_error=show_error)
    # an initial run() was scheduled by the constructor
    controller.abort()      # stop observing the in-flight execution
    controller.run()        # start again

Each execution races the operation against an abort handle. Whichever
settles first decides the outcome:

- success:  data = result, on_success(result)
- failure:  error = exc, on_error(exc)
- abort:    data and error untouched

In every case is_loading goes back to False. Abort never interrupts the
operation; see hookfx.cancel for how an operation can notice it.

Overlapping run() calls: every run() bumps a generation counter and only
the latest generation may touch the state or fire callbacks. Settlements of
older executions are dropped, so the most recent run() always wins.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar, Union

from hookfx.cancel import CancelToken, _current_token
from hookfx.errors import AbortError

T = TypeVar("T")

Disposer = Callable[[], None]
Gate = Union[bool, Callable[[], bool]]

logger = logging.getLogger("hookfx.task")


@dataclass(frozen=True)
class TaskState(Generic[T]):
    """Snapshot of a controller's observable state."""

    data: T | None = None
    is_loading: bool = False
    error: BaseException | None = None


class TaskController(Generic[T]):
    """Runs one async operation at a time and tracks its outcome."""

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        should_execute: Gate = True,
        on_success: Callable[[T], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        autostart: bool = True,
    ) -> None:
        self._operation = operation
        self._should_execute = should_execute
        self._on_success = on_success
        self._on_error = on_error
        self._state: TaskState[T] = TaskState()
        self._generation = 0
        self._abort_handle: asyncio.Future | None = None
        self._token: CancelToken | None = None
        self._work: asyncio.Future | None = None
        self._execution: asyncio.Task | None = None
        self._listeners: list[Callable[[TaskState[T]], None]] = []
        self._disposed = False
        if autostart:
            self.run()

    # --- Snapshot ---

    @property
    def state(self) -> TaskState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> BaseException | None:
        return self._state.error

    @property
    def should_execute(self) -> bool:
        """The run() gate, evaluated now."""
        gate = self._should_execute
        return bool(gate() if callable(gate) else gate)

    @should_execute.setter
    def should_execute(self, gate: Gate) -> None:
        self._should_execute = gate

    @property
    def disposed(self) -> bool:
        return self._disposed

    # --- Control ---

    def run(self) -> asyncio.Task | None:
        """Start a new execution. Returns its task, or None if gated off.

        Must be called with a running event loop. The task never raises
        (except when it is itself cancelled), so awaiting it is a safe way
        to wait for settlement.
        """
        if self._disposed or not self.should_execute:
            logger.debug("run skipped (disposed=%s)", self._disposed)
            return None
        loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation
        token = CancelToken()
        abort_handle = loop.create_future()
        self._token = token
        self._abort_handle = abort_handle
        self._work = None
        self._update(is_loading=True, error=None)
        self._execution = loop.create_task(self._execute(generation, token, abort_handle))
        return self._execution

    def abort(self) -> bool:
        """Abort the in-flight execution. Returns False if there was none.

        An abort issued before the race is observed always wins, even if the
        operation settles in the same loop iteration. An operation that has
        already settled can no longer be aborted.
        """
        handle = self._abort_handle
        if handle is None or handle.done():
            return False
        if self._work is not None and self._work.done():
            return False
        logger.debug("aborting execution %d", self._generation)
        handle.set_exception(AbortError())
        if self._token is not None:
            self._token.cancel()
        return True

    def dispose(self) -> None:
        """Abort, drop listeners, and refuse further runs."""
        if self._disposed:
            return
        self.abort()
        self._disposed = True
        # Anything still in flight is now stale.
        self._generation += 1
        self._abort_handle = None
        self._token = None
        self._work = None
        self._update(is_loading=False)
        self._listeners.clear()

    async def wait(self) -> TaskState[T]:
        """Wait for the latest execution to settle and return the snapshot."""
        execution = self._execution
        if execution is not None and not execution.done():
            await asyncio.wait((execution,))
        return self._state

    def subscribe(self, callback: Callable[[TaskState[T]], None]) -> Disposer:
        """Call callback with the new TaskState on every change.

        Returns a function that removes it.
        """
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    # --- Execution ---

    async def _execute(
        self, generation: int, token: CancelToken, abort_handle: asyncio.Future
    ) -> None:
        logger.debug("execution %d started", generation)
        try:
            if abort_handle.done():
                # Aborted before the operation was started.
                abort_handle.result()
            data = await self._race(token, abort_handle)
        except AbortError:
            logger.debug("execution %d aborted", generation)
        except asyncio.CancelledError:
            token.cancel()
            raise
        except Exception as exc:
            self._fail(generation, exc)
        else:
            self._succeed(generation, data)
        finally:
            _release(abort_handle)
            if self._is_current(generation):
                self._abort_handle = None
                self._token = None
                self._work = None
                self._update(is_loading=False)

    async def _race(self, token: CancelToken, abort_handle: asyncio.Future) -> T:
        reset = _current_token.set(token)
        try:
            # The new task copies our context, token included.
            work = asyncio.ensure_future(_invoke(self._operation))
        finally:
            _current_token.reset(reset)
        if self._abort_handle is abort_handle:
            self._work = work
        try:
            await asyncio.wait((work, abort_handle), return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not work.done():
                work.add_done_callback(_reap_abandoned)
        # An issued abort wins over a settlement seen in the same wakeup.
        if abort_handle.done():
            if work.done():
                _reap_abandoned(work)
            return abort_handle.result()
        if work.cancelled():
            raise AbortError()
        return work.result()

    def _succeed(self, generation: int, data: T) -> None:
        if not self._is_current(generation):
            logger.debug("dropping stale result of execution %d", generation)
            return
        self._update(data=data)
        if self._on_success is None:
            return
        try:
            self._on_success(data)
        except Exception as exc:
            self._fail(generation, exc)

    def _fail(self, generation: int, exc: BaseException) -> None:
        if not self._is_current(generation):
            logger.debug("dropping stale failure of execution %d: %r", generation, exc)
            return
        logger.debug("execution %d failed: %r", generation, exc)
        self._update(error=exc)
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("on_error callback failed")

    def _is_current(self, generation: int) -> bool:
        return not self._disposed and generation == self._generation

    def _update(self, **changes) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("task state listener failed")

    def __repr__(self) -> str:
        s = self._state
        return f"TaskController(is_loading={s.is_loading}, data={s.data!r}, error={s.error!r})"


async def _invoke(operation: Callable[[], Awaitable[T]]) -> T:
    return await operation()


def _release(abort_handle: asyncio.Future) -> None:
    """Settle the abort handle so asyncio never reports it as unretrieved."""
    if not abort_handle.done():
        abort_handle.cancel()
    elif not abort_handle.cancelled():
        abort_handle.exception()


def _reap_abandoned(work: asyncio.Future) -> None:
    if work.cancelled():
        return
    exc = work.exception()
    if exc is not None:
        logger.debug("abandoned operation raised %r", exc)

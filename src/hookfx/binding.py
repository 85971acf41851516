"""Bindings — scope store and task subscriptions to a consumer's lifetime.

A binding is an explicit subscribe/unsubscribe pair owned by one consumer
(a widget, a request handler, a test). attach() when the consumer comes up,
detach() when it goes away; or use the binding as a context manager so the
release happens on every exit path.

    with use_global_state(store, "count", 0) as count:
        count.value        # mirrors the store
        count.set(6)       # writes through, every listener is notified

    with use_task(load_products) as products:
        await products.controller.wait()
    # leaving the block aborted anything still in flight
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Awaitable, Callable, Generic, Hashable, Iterator, TypeVar

from hookfx.store import ListenerId, ObservableStore
from hookfx.task import Disposer, TaskController, TaskState

T = TypeVar("T")


class StateBinding(Generic[T]):
    """Mirror of one store key, live between attach() and detach()."""

    def __init__(
        self,
        store: ObservableStore,
        key: Hashable,
        default: T,
        on_change: Callable[[T], None] | None = None,
    ) -> None:
        self._store = store
        self._key = key
        self._default = default
        self._on_change = on_change
        self._listener_id: ListenerId | None = None
        store.ensure(key, default)
        self.value: T = store.get(key)

    @property
    def key(self) -> Hashable:
        return self._key

    @property
    def attached(self) -> bool:
        return self._listener_id is not None

    def attach(self) -> StateBinding[T]:
        if self._listener_id is None:
            self._store.ensure(self._key, self._default)
            self.value = self._store.get(self._key)
            self._listener_id = self._store.subscribe(self._key, self._receive)
        return self

    def detach(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._listener_id is not None:
            self._store.unsubscribe(self._key, self._listener_id)
            self._listener_id = None

    def set(self, value: T) -> None:
        """Write through the store (notifies every consumer of the key)."""
        self._store.set(self._key, value)

    def _receive(self, value: T) -> None:
        # Fan-out iterates a snapshot, so we can still be called right after detach.
        if self._listener_id is None:
            return
        self.value = value
        if self._on_change is not None:
            self._on_change(value)

    def __enter__(self) -> StateBinding[T]:
        return self.attach()

    def __exit__(self, *exc_info) -> None:
        self.detach()

    def __repr__(self) -> str:
        state = "attached" if self.attached else "detached"
        return f"StateBinding({self._key!r}, {self.value!r}, {state})"


class TaskBinding(Generic[T]):
    """Subscription to a TaskController; detaching disposes the controller."""

    def __init__(
        self,
        controller: TaskController[T],
        on_change: Callable[[TaskState[T]], None] | None = None,
    ) -> None:
        self.controller = controller
        self._on_change = on_change
        self._unsubscribe: Disposer | None = None

    @property
    def state(self) -> TaskState[T]:
        return self.controller.state

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self) -> TaskBinding[T]:
        if self._unsubscribe is None:
            self._unsubscribe = self.controller.subscribe(self._receive)
        return self

    def detach(self) -> None:
        """Unsubscribe and dispose the controller (aborts in-flight work)."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.controller.dispose()

    def _receive(self, state: TaskState[T]) -> None:
        if self._unsubscribe is not None and self._on_change is not None:
            self._on_change(state)

    def __enter__(self) -> TaskBinding[T]:
        return self.attach()

    def __exit__(self, *exc_info) -> None:
        self.detach()


@contextmanager
def use_global_state(
    store: ObservableStore,
    key: Hashable,
    default: T,
    on_change: Callable[[T], None] | None = None,
) -> Iterator[StateBinding[T]]:
    """Attached StateBinding for the duration of a with-block."""
    with StateBinding(store, key, default, on_change) as binding:
        yield binding


@contextmanager
def use_task(
    operation: Callable[[], Awaitable[T]],
    *,
    on_change: Callable[[TaskState], None] | None = None,
    **options,
) -> Iterator[TaskBinding]:
    """TaskController bound to a with-block.

    options go to TaskController (should_execute, on_success, on_error,
    autostart). The controller is created with autostart deferred until
    the binding is attached, so on_change sees the first transition.
    """
    autostart = options.pop("autostart", True)
    controller = TaskController(operation, autostart=False, **options)
    with TaskBinding(controller, on_change) as binding:
        if autostart:
            controller.run()
        yield binding

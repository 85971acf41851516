"""Textual integration for hookfx. Opt-in — requires textual.

Store notifications and task transitions reach widgets through guarded
effects: skipped while the app is not running or is paused, NoMatches
from widget queries swallowed, and calls from other threads marshaled with
call_from_thread. Bindings are released when the widget unmounts.

    class Counter(HooksMixin, Static):
        def on_mount(self) -> None:
            self.count = self.use_global_state(
                STORE, "count", 5, lambda v: self.update(f"Count: {v}")
            )
            self.products = self.use_task(fetch_products, self.render_products)

Textual calls on_unmount on every class in the MRO, so subclasses may
define their own without calling super().
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from hookfx.binding import StateBinding, TaskBinding
from hookfx.task import TaskController

logger = logging.getLogger("hookfx.textual")

# Paused apps, keyed by id(app). Present only inside a pause() block.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def guard(app, effect):
    """Wrap effect so it only touches widgets when that is safe.

    Skips while not safe, swallows NoMatches, and marshals calls from
    threads other than the one that created the guard.
    """
    _main = threading.get_ident()

    def _safe(value):
        try:
            effect(value)
        except NoMatches:
            logger.debug("effect skipped, widget not found")

    def _guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    return _guarded


class HooksMixin:
    """Store and task bindings scoped to a widget's mounted lifetime.

    Mix in before the Textual base class. Call the use_* methods from
    on_mount (or later); everything is detached on unmount.
    """

    def _hook_bindings(self) -> list:
        bindings = getattr(self, "_hookfx_bindings", None)
        if bindings is None:
            bindings = self._hookfx_bindings = []
        return bindings

    def use_global_state(self, store, key, default, effect=None) -> StateBinding:
        """Mirror store[key]; effect(value) runs on every change."""
        on_change = guard(self.app, effect) if effect is not None else None
        binding = StateBinding(store, key, default, on_change).attach()
        self._hook_bindings().append(binding)
        return binding

    def use_task(self, operation, effect=None, **options) -> TaskBinding:
        """Run operation in a TaskController owned by this widget.

        effect(state) runs on every TaskState change. options go to
        TaskController. Unmounting aborts whatever is still in flight.
        """
        autostart = options.pop("autostart", True)
        controller = TaskController(operation, autostart=False, **options)
        on_change = guard(self.app, effect) if effect is not None else None
        binding = TaskBinding(controller, on_change).attach()
        self._hook_bindings().append(binding)
        if autostart:
            controller.run()
        return binding

    def release_hooks(self) -> None:
        """Detach every binding created through this mixin."""
        bindings = self._hook_bindings()
        while bindings:
            bindings.pop().detach()

    def on_unmount(self) -> None:
        self.release_hooks()

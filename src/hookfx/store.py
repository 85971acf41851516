"""ObservableStore — keyed values with synchronous listener fan-out.

One store is shared by every consumer that holds a reference to it. Entries
are created lazily by ensure() and live as long as the store. The default
passed to ensure() only counts the first time a key is seen; later defaults
are ignored.

set() notifies listeners immediately, in registration order, with no
batching and no equality check. Listener errors propagate to the caller.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, Iterator, TypeVar

from hookfx._ids import new_id
from hookfx.errors import UninitializedKeyError, UnknownKeyError

T = TypeVar("T")

ListenerId = str

logger = logging.getLogger("hookfx.store")

_UNSET = object()


@dataclass
class StoreEntry(Generic[T]):
    """Current value plus the listeners registered for one key."""

    value: T
    listeners: dict[ListenerId, Callable[[T], None]] = field(default_factory=dict)


class ObservableStore:
    """Process-lifetime key/value registry with per-key listeners."""

    def __init__(
        self,
        defaults: dict[Hashable, object] | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._entries: dict[Hashable, StoreEntry] = {}
        self._new_id = id_factory or new_id
        for key, default in (defaults or {}).items():
            self.ensure(key, default)

    def ensure(self, key: Hashable, default: object) -> None:
        """Create the entry for key if it does not exist yet."""
        if key not in self._entries:
            self._entries[key] = StoreEntry(default)

    def get(self, key: Hashable, default: object = _UNSET) -> object:
        """Current value for key.

        With a default, the key is ensured first. Without one, reading a key
        nobody has ensured raises UninitializedKeyError.
        """
        if default is not _UNSET:
            self.ensure(key, default)
        entry = self._entries.get(key)
        if entry is None:
            raise UninitializedKeyError(key)
        return entry.value

    def set(self, key: Hashable, value: object) -> None:
        """Overwrite the value and notify every listener of key."""
        entry = self._entry(key)
        entry.value = value
        logger.debug("set %r (%d listeners)", key, len(entry.listeners))
        # Snapshot: listeners may (un)subscribe while we iterate.
        for listener in list(entry.listeners.values()):
            listener(value)

    def subscribe(self, key: Hashable, callback: Callable[[object], None]) -> ListenerId:
        """Register callback for key. Returns the handle for unsubscribe()."""
        entry = self._entry(key)
        listener_id = self._new_id()
        while listener_id in entry.listeners:
            listener_id = self._new_id()
        entry.listeners[listener_id] = callback
        return listener_id

    def unsubscribe(self, key: Hashable, listener_id: ListenerId) -> None:
        """Remove a listener. Unknown keys or ids are ignored."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.listeners.pop(listener_id, None)

    @contextmanager
    def listen(self, key: Hashable, callback: Callable[[object], None]) -> Iterator[ListenerId]:
        """Subscribe for the duration of a with-block.

        Usage:
            with store.listen("count", on_count):
                store.set("count", 6)   # on_count(6)
            store.set("count", 7)       # not delivered
        """
        listener_id = self.subscribe(key, callback)
        try:
            yield listener_id
        finally:
            self.unsubscribe(key, listener_id)

    def listener_count(self, key: Hashable) -> int:
        return len(self._entry(key).listeners)

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _entry(self, key: Hashable) -> StoreEntry:
        entry = self._entries.get(key)
        if entry is None:
            raise UnknownKeyError(key)
        return entry

    def __repr__(self) -> str:
        return f"ObservableStore({len(self._entries)} keys)"

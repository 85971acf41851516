"""hookfx: observable global state and cancellable async tasks for Python UIs."""

from importlib.metadata import version as _version

__version__ = _version("hookfx")

from hookfx.errors import HookError, UnknownKeyError, UninitializedKeyError, AbortError
from hookfx.store import ObservableStore, StoreEntry
from hookfx.cancel import CancelToken, current_token, check_cancelled
from hookfx.task import TaskController, TaskState
from hookfx.binding import StateBinding, TaskBinding, use_global_state, use_task
# textual is opt-in: import hookfx.textual explicitly

__all__ = [
    "HookError",
    "UnknownKeyError",
    "UninitializedKeyError",
    "AbortError",
    "ObservableStore",
    "StoreEntry",
    "CancelToken",
    "current_token",
    "check_cancelled",
    "TaskController",
    "TaskState",
    "StateBinding",
    "TaskBinding",
    "use_global_state",
    "use_task",
]

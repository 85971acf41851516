"""Errors raised by hookfx.

UnknownKeyError family: programmer mistakes on the store, raised at once.
AbortError: cooperative cancellation of a task execution. The controller
swallows it; everything else an operation raises is surfaced as-is.
"""


class HookError(Exception):
    """Base class for hookfx errors."""


class UnknownKeyError(HookError, KeyError):
    """A store operation referenced a key that has no entry."""

    def __init__(self, key: object) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"no store entry for key {self.key!r}"


class UninitializedKeyError(UnknownKeyError):
    """get() on a key that was never ensured, without a default."""

    def __str__(self) -> str:
        return f"key {self.key!r} read before any default was supplied"


class AbortError(HookError):
    """The in-flight execution was aborted."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)
